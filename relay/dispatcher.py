"""
relay.dispatcher

Fan-out of one client packet to every downstream, plus reply arbitration:

- every endpoint receives the packet, in configured order
- only endpoint 0 is ever read from, and only for command traffic
  (anything that is not GPS or an ordinary message)
- that single reply, if any, is what goes back to the client

There are no retries and no best-effort delivery: the first failing write or
read propagates and ends the session.
"""

from typing import Optional, Sequence

from common.config import PROTOCOL_GPS, PROTOCOL_ORDINARY_MESSAGE
from common.framing import Packet
from common.log import log

TELEMETRY_PROTOCOLS = frozenset({PROTOCOL_GPS, PROTOCOL_ORDINARY_MESSAGE})


def needs_reply(protocol_id: int) -> bool:
    return protocol_id not in TELEMETRY_PROTOCOLS


def dispatch(packet: Packet, endpoints: Sequence, debug: bool = False) -> Optional[Packet]:
    reply = None
    solicit = needs_reply(packet.protocol_id)

    for position, ep in enumerate(endpoints):
        ep.send(packet)
        log("relay", "dispatch", "PACKET_SENT", addr=ep.addr, position=position, size=len(packet))

        if solicit and position == 0:
            reply = ep.read_packet()
            if debug:
                log("relay", "dispatch", "REPLY_IN", level="DEBUG", addr=ep.addr, hex=reply.hex())

    return reply
