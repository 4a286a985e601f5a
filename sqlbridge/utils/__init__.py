from sqlbridge.utils import logging

__all__ = ("logging",)
