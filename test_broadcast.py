import asyncio
import unittest

from pulse.core.broadcast import BroadcastHub, StreamClosed
from pulse.data.schemas import RescanSample

class TestBroadcastHub(unittest.TestCase):
    def test_publish_reaches_all_in_order(self):
        async def scenario():
            hub = BroadcastHub(capacity=10)
            subs = [hub.subscribe() for _ in range(3)]
            for h in (100, 200, 300):
                hub.publish(RescanSample(True, h))
            return [[(await s.get(timeout=0.1)).scanned_height for _ in range(3)] for s in subs]

        for heights in asyncio.run(scenario()):
            self.assertEqual(heights, [100, 200, 300])

    def test_full_subscriber_does_not_block_others(self):
        async def scenario():
            hub = BroadcastHub(capacity=2)
            slow = hub.subscribe()
            fast = [hub.subscribe() for _ in range(3)]

            for h in range(5):
                hub.publish(RescanSample(True, h))
                # Fast readers keep up, the slow one never reads
                for s in fast:
                    self.assertEqual((await s.get(timeout=0.1)).scanned_height, h)

            return slow

        slow = asyncio.run(scenario())
        self.assertEqual(slow.pending(), 2)
        self.assertEqual(slow.dropped, 3)

    def test_publish_reports_delivery_count(self):
        async def scenario():
            hub = BroadcastHub(capacity=1)
            hub.subscribe()
            hub.subscribe()
            first = hub.publish(RescanSample(True, 1))
            second = hub.publish(RescanSample(True, 2))
            return first, second, hub.last_sample

        first, second, last = asyncio.run(scenario())
        self.assertEqual(first, 2)
        self.assertEqual(second, 0)
        self.assertEqual(last.scanned_height, 2)

    def test_close_all_closes_every_subscriber(self):
        async def scenario():
            hub = BroadcastHub(capacity=2)
            subs = [hub.subscribe() for _ in range(3)]
            # Fill one queue completely; end-of-stream must still arrive
            hub.publish(RescanSample(True, 1))
            hub.publish(RescanSample(True, 2))
            hub.close_all()

            self.assertEqual(hub.subscriber_count(), 0)
            closed = 0
            for s in subs:
                self.assertTrue(s.closed)
                self.assertFalse(s.offer(RescanSample(True, 3)))
                try:
                    while True:
                        await s.get(timeout=0.1)
                except StreamClosed:
                    closed += 1
            return closed

        self.assertEqual(asyncio.run(scenario()), 3)

    def test_unsubscribe_is_idempotent(self):
        async def scenario():
            hub = BroadcastHub()
            sub = hub.subscribe()
            hub.unsubscribe(sub)
            hub.unsubscribe(sub)
            hub.publish(RescanSample(True, 1))
            return hub.subscriber_count(), sub.pending()

        self.assertEqual(asyncio.run(scenario()), (0, 0))

    def test_get_times_out_with_none(self):
        async def scenario():
            sub = BroadcastHub().subscribe()
            return await sub.get(timeout=0.01)

        self.assertIsNone(asyncio.run(scenario()))

    def test_single_active_stream(self):
        hub = BroadcastHub()
        first, second = object(), object()
        self.assertTrue(hub.attach_stream(first))
        self.assertFalse(hub.attach_stream(second))
        self.assertIs(hub.active_stream, first)

        hub.detach_stream(second)
        self.assertTrue(hub.has_active_stream())
        hub.detach_stream(first)
        self.assertFalse(hub.has_active_stream())

if __name__ == '__main__':
    unittest.main()
