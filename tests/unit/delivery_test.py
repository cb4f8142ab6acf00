from unittest import TestCase

from cannon.delivery import InlineDelivery, QueueDelivery


class TestQueueDelivery(TestCase):
    def test_callbacks_wait_for_run_pending(self):
        delivery = QueueDelivery()
        calls = []

        delivery.post(calls.append, 1)
        delivery.post(calls.append, 2)
        self.assertEqual([], calls)

        self.assertEqual(2, delivery.run_pending())
        self.assertEqual([1, 2], calls)
        self.assertEqual(0, delivery.run_pending())

    def test_run_pending_times_out(self):
        self.assertEqual(0, QueueDelivery().run_pending(timeout=0.01))

    def test_failing_callback_does_not_stop_the_rest(self):
        delivery = QueueDelivery()
        calls = []

        def fail(value):
            raise ValueError(value)

        delivery.post(fail, 'x')
        delivery.post(calls.append, 'y')

        self.assertEqual(2, delivery.run_pending())
        self.assertEqual(['y'], calls)


class TestInlineDelivery(TestCase):
    def test_runs_immediately(self):
        calls = []
        InlineDelivery().post(calls.append, 'now')
        self.assertEqual(['now'], calls)
