"""基于传感器的公共交通到站检测。"""

__version__ = "0.1.0"
