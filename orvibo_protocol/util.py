#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import string
from ipaddress import IPv4Address

import netifaces

from orvibo_protocol.internal_types import *
from .constants import MAC_LENGTH
from .exceptions import NetworkError

def normalize_mac(mac: Union[str, bytes]) -> str:
    """Converts a MAC address into its canonical form: 12 lowercase hex characters with no separators.

    Accepts 6 raw bytes, or a string with or without ':' / '-' / '.' separators.

    Raises ValueError if the value is not a valid 6-byte MAC address.
    """
    if isinstance(mac, (bytes, bytearray)):
        if len(mac) != MAC_LENGTH:
            raise ValueError(f"MAC address must be {MAC_LENGTH} bytes: {mac!r}")
        return bytes(mac).hex()
    result = mac.strip().lower()
    for sep in (':', '-', '.'):
        result = result.replace(sep, '')
    if len(result) != MAC_LENGTH * 2 or not all(c in string.hexdigits for c in result):
        raise ValueError(f"Invalid MAC address: {mac!r}")
    return result

def mac_to_bytes(mac: Union[str, bytes]) -> bytes:
    """Returns the 6 raw bytes of a MAC address."""
    return bytes.fromhex(normalize_mac(mac))

def reverse_mac(mac: Union[str, bytes]) -> str:
    """Reverses the byte order of a MAC address; e.g., "aabbccddeeff" becomes "ffeeddccbbaa"."""
    return mac_to_bytes(mac)[::-1].hex()

def hex_or_bytes(value: Union[str, bytes]) -> bytes:
    """Accepts either raw bytes or a hex string (whitespace is ignored) and returns bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return bytes.fromhex(''.join(value.split()))
    except ValueError as e:
        raise ValueError(f"Invalid hex string: {value!r}") from e

def get_default_ip_gateway() -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IPv4 gateway,
       if any.
       returns (None, None) if there is no default gateway."""
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netifaces.AF_INET in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netifaces.AF_INET][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)

def get_local_ip_addresses_and_interfaces(include_loopback: bool=True) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[ip_address: str, interface_name: str] for the IPv4 addresses of the local host.
       The result is sorted in a way that attempts to place the "preferred"
       canonical IP address first in the list, according to the following scheme:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Non-loopback addresses precede loopback addresses.
           3. Addresses that begin with 172. follow other addresses. This is a hack to
              deprioritize local docker network addresses.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    _, default_gateway_ifname = get_default_ip_gateway()
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        if netifaces.AF_INET in ifinfo:
            for addrinfo in ifinfo[netifaces.AF_INET]:
              ip_str = addrinfo['addr']
              assert isinstance(ip_str, str)
              if IPv4Address(ip_str).is_loopback:
                  if not include_loopback:
                      continue
                  priority = 3
              elif ifname == default_gateway_ifname:
                  priority = 0
              elif ip_str.startswith('172.'):
                  priority = 2
              else:
                  priority = 1

              result_with_priority.append((priority, ip_str, ifname))
    return [ (ip, ifname) for _, ip, ifname in sorted(result_with_priority)]

def get_local_ip_addresses(include_loopback: bool=True) -> List[str]:
    """Returns a List[ip_address: str] for the IPv4 addresses of the local host, preferred address first.
       See get_local_ip_addresses_and_interfaces()."""
    return [ ip for ip, _ in get_local_ip_addresses_and_interfaces(include_loopback=include_loopback)]

def get_local_ipv4_address() -> str:
    """Returns the preferred non-loopback IPv4 address of the local host. Datagrams
       from this address are our own broadcasts echoed back to us.

       Raises NetworkError if the host has no usable IPv4 address."""
    try:
        addresses = get_local_ip_addresses(include_loopback=False)
    except (OSError, ValueError) as e:
        raise NetworkError(f"Unable to enumerate local network interfaces: {e}") from e
    if len(addresses) == 0:
        raise NetworkError("Unable to find IP address. Ensure you're connected to a network")
    return addresses[0]
