"""Configuration constants for call signaling."""

INVITE_TIMEOUT = 30.0  # seconds an outgoing invite rings before timing out
REJECT_DISPLAY_DELAY = 3.0  # seconds the "rejected" status stays visible
