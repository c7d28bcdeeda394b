"""chatwire - one streaming contract over many chat completion APIs"""

__version__ = "0.1.0"
