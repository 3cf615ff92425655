# tests/test_events.py

import unittest

from aimtrack.events import NEW_RUN, NewRunEvent, RunEvents


class TestRunEvents(unittest.TestCase):
    """Tests for the new-run publish/subscribe boundary."""

    def setUp(self):
        self.events = RunEvents()
        self.event = NewRunEvent(task_name="Tile Frenzy", hash="abc", path="/stats/a.csv", run_id=7)

    def test_publish_reaches_all_subscribers(self):
        first, second = [], []
        self.events.subscribe(first.append)
        self.events.subscribe(second.append)

        self.events.publish(self.event)

        self.assertEqual(first, [self.event])
        self.assertEqual(second, [self.event])

    def test_unsubscribe(self):
        received = []
        unsubscribe = self.events.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        self.events.publish(self.event)

        self.assertEqual(received, [])
        self.assertEqual(self.events.subscriber_count, 0)

    def test_failing_subscriber_does_not_block_others(self):
        received = []

        def broken(event):
            raise RuntimeError("client gone")

        self.events.subscribe(broken)
        self.events.subscribe(received.append)

        with self.assertLogs('aimtrack.events', level='ERROR'):
            self.events.publish(self.event)

        self.assertEqual(received, [self.event])

    def test_publish_without_subscribers(self):
        self.events.publish(self.event)
        self.assertEqual(self.events.subscriber_count, 0)

    def test_message_shape(self):
        self.assertEqual(self.event.to_message(), {
            "type": NEW_RUN,
            "task_name": "Tile Frenzy",
            "hash": "abc",
            "path": "/stats/a.csv",
            "run_id": 7,
        })


if __name__ == '__main__':
    unittest.main()
