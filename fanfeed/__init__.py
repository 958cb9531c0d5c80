"""fanfeed - 粉丝内容聚合：微博、抖音、小红书内容解析与管理。"""

import logging

logger = logging.getLogger("fanfeed")
__version__ = "1.0.0"

__all__ = ["logger", "__version__"]
