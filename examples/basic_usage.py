# python
import io
import logging

from xmpp_config import ClientConfiguration, LoggingHandler
from xmpp_config.exceptions import ConfigValidationError

DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<xmppConfig>
    <defaultPacketReplyTimeout>not-a-number</defaultPacketReplyTimeout>
    <mechName>SCRAM-SHA-1</mechName>
    <mechName>PLAIN</mechName>
    <localSocks5ProxyEnabled>false</localSocks5ProxyEnabled>
    <packetCollectorSize>100</packetCollectorSize>
</xmppConfig>
"""

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)

    config = ClientConfiguration()
    config.set_config_stream(io.BytesIO(DOCUMENT), "inline document")

    print("Loaded:", config.load_report.summary())
    print("Reply timeout (kept default):", config.get_reply_timeout())
    print("SOCKS5 proxy enabled:", config.is_socks5_proxy_enabled())

    try:
        config.set_reply_timeout(0)
    except ConfigValidationError as exc:
        print("Rejected:", exc.errors)

    config.set_parsing_failure_handler(LoggingHandler())
    print("Snapshot:", dict(config.snapshot()))
