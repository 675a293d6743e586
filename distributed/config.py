"""
Billing node configuration.

Socket addresses, the parameter file and read timeouts for the three roles.
Environment variables override the defaults; command-line flags override
both.
"""

import os
from typing import Tuple

# Defaults
DEFAULT_WAN_SOCKET = os.getenv('BILLING_WAN_SOCKET', '127.0.0.1:1025')
DEFAULT_LAN_SOCKET = os.getenv('BILLING_LAN_SOCKET', '127.0.0.1:1026')

DEFAULT_DH_PARAMS = os.getenv('BILLING_DH_PARAMS', 'dhparams.txt')
DEFAULT_DH_BITS = int(os.getenv('BILLING_DH_BITS', 1024))

DEFAULT_SCHEME = os.getenv('BILLING_SCHEME', 'integer')

# Blocking reads: socket timeout per attempt and number of attempts
DEFAULT_READ_TIMEOUT = float(os.getenv('BILLING_READ_TIMEOUT', 1.0))
DEFAULT_READ_RETRIES = int(os.getenv('BILLING_READ_RETRIES', 30))


def parse_socket_addr(addr: str) -> Tuple[str, int]:
    """'127.0.0.1:1025' -> ('127.0.0.1', 1025)"""
    host, sep, port = addr.rpartition(':')
    if not sep or not host or not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"Expected IPADDR:PORT, got {addr!r}")
    return host, int(port)


class Config:
    """Configuration of one billing node."""

    def __init__(self):
        self.wan_socket = DEFAULT_WAN_SOCKET
        self.lan_socket = DEFAULT_LAN_SOCKET
        self.dh_params = DEFAULT_DH_PARAMS
        self.dh_bits = DEFAULT_DH_BITS
        self.scheme = DEFAULT_SCHEME
        self.read_timeout = DEFAULT_READ_TIMEOUT
        self.read_retries = DEFAULT_READ_RETRIES

    @property
    def wan_addr(self) -> Tuple[str, int]:
        return parse_socket_addr(self.wan_socket)

    @property
    def lan_addr(self) -> Tuple[str, int]:
        return parse_socket_addr(self.lan_socket)


# Global configuration instance
config = Config()
