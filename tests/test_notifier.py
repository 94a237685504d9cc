import asyncio
import unittest

from notifier import ChangeNotifier


class FakeWebSocket:

    def __init__(self, broken=False):
        self.broken = broken
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.broken:
            raise RuntimeError("connection closed")
        self.sent.append(text)


class ChangeNotifierTests(unittest.TestCase):

    def test_broadcasts_to_every_subscriber(self):
        notifier = ChangeNotifier()
        first, second = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            await notifier.connect(first)
            await notifier.connect(second)
            await notifier.notify()

        asyncio.run(scenario())

        self.assertTrue(first.accepted)
        self.assertEqual(first.sent, ["db_update"])
        self.assertEqual(second.sent, ["db_update"])

    def test_failed_subscriber_is_dropped(self):
        notifier = ChangeNotifier()
        healthy, broken = FakeWebSocket(), FakeWebSocket(broken=True)

        async def scenario():
            await notifier.connect(healthy)
            await notifier.connect(broken)
            await notifier.notify()
            await notifier.notify()

        asyncio.run(scenario())

        self.assertEqual(notifier.connections, {healthy})
        self.assertEqual(healthy.sent, ["db_update", "db_update"])

    def test_disconnect(self):
        notifier = ChangeNotifier()
        ws = FakeWebSocket()

        async def scenario():
            await notifier.connect(ws)
            notifier.disconnect(ws)
            await notifier.notify()

        asyncio.run(scenario())
        self.assertEqual(ws.sent, [])


if __name__ == "__main__":
    unittest.main()
