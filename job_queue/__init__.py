"""
Notification Queue — Decouples order creation from notification delivery.

- The order service PUBLISHES an envelope after the order row is committed
- Worker processes CONSUME envelopes and deliver them one at a time
- Supports Redis lists (production) and in-memory asyncio.Queue (dev)
"""
