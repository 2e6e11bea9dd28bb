"""Version information for relay-client."""

__version__ = "1.0.0"
__author__ = "relay-client contributors"
__license__ = "MIT"
__description__ = "Server-Sent Events client for webhook relay channels"
__url__ = "https://github.com/relay-client/relay-client"
