"""
Utility functions for the tabletflow connector.
"""
import os
import uuid
import logging
from typing import List, Union

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def generate_id() -> str:
    """Generate a unique ID."""
    return uuid.uuid4().hex


def ensure_directory_exists(directory_path: str) -> None:
    """Ensure that a directory exists, creating it if necessary."""
    if not os.path.exists(directory_path):
        os.makedirs(directory_path)


def parse_master_addresses(addresses: Union[str, List[str], None]) -> List[str]:
    """
    Normalize master addresses into a list of "host:port" strings.

    Accepts a comma separated string or a list. Empty entries are dropped.
    """
    if addresses is None:
        return []
    if isinstance(addresses, str):
        addresses = addresses.split(',')
    return [address.strip() for address in addresses if address and address.strip()]


def split_host_port(address: str, default_port: int) -> tuple:
    """Split "host:port" into (host, port), falling back to default_port."""
    if ':' in address:
        host, port = address.rsplit(':', 1)
        return host, int(port)
    return address, default_port


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)
