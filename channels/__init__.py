"""
Channel adapters — translate provider payloads to and from the engine's
InboundMessage / OutboundMessage types.
"""

from channels.sms import SmsAdapter
from channels.web import WebAdapter
from channels.whatsapp import WhatsAppAdapter

__all__ = ["SmsAdapter", "WebAdapter", "WhatsAppAdapter"]
