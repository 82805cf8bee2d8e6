"""birdy - 本地包安装引擎"""

__version__ = "1.0.0"
