from .client import AcmeClient, AcmeSession
from .certbot import CertBot
from .version import __version__
from .plugin_base import PluginRegistry

__all__ = ["AcmeClient", "AcmeSession", "CertBot", "PluginRegistry"]
__version__ = __version__
