"""
Auth: device-code login and logout.

Stores an access/refresh token pair in ~/.codag/.env once the user approves
the login in their browser.
"""

from .device_flow import DeviceCode, DeviceFlow, DeviceToken, open_browser

__all__ = ["DeviceCode", "DeviceFlow", "DeviceToken", "open_browser"]
