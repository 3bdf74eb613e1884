"""Real-time delivery — event bus → per-connection router → WebSocket.

Learn: Events flow in one direction:
1. Poll engines / services → EventBus.publish (in-process, synchronous)
2. Each live connection's ConnectionEventRouter filters events for its
   user and enqueues JSON envelopes
3. The WebSocket endpoint drains that queue onto the socket

Inbound client commands go the other way: socket → router → poll engine
subscribe/unsubscribe.
"""
