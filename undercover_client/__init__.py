"""
Undercover party game API client
谁是卧底游戏客户端
"""

__version__ = "0.1.0"
