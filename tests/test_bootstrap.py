from __future__ import annotations

import unittest

from fakes import SERVER, FakeJenkins, quiet_logger, started_item
from jenkinsqueue.bootstrap import queue_job, wait_for_execution
from jenkinsqueue.config import AppConfig, JobConfig, ServerConfig
from jenkinsqueue.models import QueueItem
from jenkinsqueue.remote import JobCancelledError, TrackingError

QUEUE_LOCATION = f"{SERVER}queue/item/1/"


class QueueJobTest(unittest.TestCase):
    def _config(self, parameterized: bool) -> AppConfig:
        return AppConfig(
            server=ServerConfig(url=SERVER),
            job=JobConfig(name="build", parameterized=parameterized, parameters={"BRANCH": "main"}),
        )

    def test_posts_parameters_when_parameterized(self) -> None:
        fake = FakeJenkins()

        location = queue_job(fake, self._config(parameterized=True), quiet_logger())

        self.assertEqual(location, QUEUE_LOCATION)
        self.assertEqual(
            fake.calls_to("enqueue"),
            [(f"{SERVER}job/build/buildWithParameters?delay=0sec", {"BRANCH": "main"})],
        )

    def test_plain_build_sends_no_parameters(self) -> None:
        fake = FakeJenkins()

        queue_job(fake, self._config(parameterized=False), quiet_logger())

        self.assertEqual(fake.calls_to("enqueue"), [(f"{SERVER}job/build/build?delay=0sec", None)])

    def test_rejected_enqueue_is_fatal(self) -> None:
        fake = FakeJenkins()
        fake.enqueue_status = 403

        with self.assertRaises(TrackingError):
            queue_job(fake, self._config(parameterized=False), quiet_logger())


class WaitForExecutionTest(unittest.TestCase):
    def test_polls_until_started(self) -> None:
        fake = FakeJenkins()
        fake.queue_items[QUEUE_LOCATION] = [QueueItem(cancelled=False), started_item("build", 7)]
        sleeps: list[float] = []

        item = wait_for_execution(fake, QUEUE_LOCATION, 5, quiet_logger(), sleep=sleeps.append)

        self.assertEqual(item.executable_number, 7)
        self.assertEqual(item.task_name, "build")
        self.assertEqual(sleeps, [5])

    def test_cancelled_item_is_fatal(self) -> None:
        fake = FakeJenkins()
        fake.queue_items[QUEUE_LOCATION] = [QueueItem(cancelled=True)]

        with self.assertRaisesRegex(JobCancelledError, "Jenkins job canceled."):
            wait_for_execution(fake, QUEUE_LOCATION, 5, quiet_logger(), sleep=lambda seconds: None)

    def test_queue_item_from_json_accepts_both_spellings(self) -> None:
        self.assertTrue(QueueItem.from_json({"canceled": True}).cancelled)
        item = QueueItem.from_json(
            {
                "cancelled": False,
                "executable": {"url": f"{SERVER}job/build/7/", "number": 7},
                "task": {"url": f"{SERVER}job/build/", "name": "build"},
            }
        )
        self.assertTrue(item.started)
        self.assertEqual(item.task_url, f"{SERVER}job/build/")


if __name__ == "__main__":
    unittest.main()
