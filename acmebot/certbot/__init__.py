from .certbot import CertBot
from .exceptions import OrderFailed
from .process import OrderProcess, ProcessState
from .runner import Runner
from .storage import RequestStorage, ConfigRequestStorage
from .store import CertificateStore, FileCertificateStore

__all__ = [
    "CertBot",
    "OrderFailed",
    "OrderProcess",
    "ProcessState",
    "Runner",
    "RequestStorage",
    "ConfigRequestStorage",
    "CertificateStore",
    "FileCertificateStore",
]
