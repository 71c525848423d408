"""Job lifecycle against both record backends, with the status index kept in step."""
import unittest
import uuid

from jobtracker.db import connect
from jobtracker.errors import StorageError, ValidationError
from jobtracker.keys import status_set_key
from jobtracker.models.job import JobStatus, JobUpdate
from jobtracker.services.index_service import StatusIndex
from jobtracker.services.job_service import JobService
from jobtracker.stores.job_store import DuckDBJobStore, KeyValueJobStore

from support import FakeClock, FlakyKeyValueStore, job_create


class JobServiceContract:
    """Lifecycle behaviour independent of where job records live."""

    def make_store(self, kv):
        raise NotImplementedError

    async def asyncSetUp(self):
        self.kv = FlakyKeyValueStore()
        self.clock = FakeClock()
        self.index = StatusIndex(self.kv)
        self.jobs = JobService(self.make_store(self.kv), self.index, clock=self.clock)

    async def assert_index_consistent(self):
        """Every job is in exactly its own status set, and nothing else is indexed."""
        jobs = await self.jobs.all_jobs()
        self.assertEqual(await self.index.all_ids(), {job.id for job in jobs})
        for status in JobStatus:
            self.assertEqual(
                await self.index.members(status),
                {job.id for job in jobs if job.status == status},
                status_set_key(status),
            )

    # Scenario A
    async def test_created_job_is_listed_under_its_status_only(self):
        job = await self.jobs.create(job_create(JobStatus.PENDING))
        pending = await self.jobs.list_by_status(JobStatus.PENDING)
        self.assertIn(job.id, [j.id for j in pending])
        self.assertEqual(await self.jobs.list_by_status(JobStatus.HIRED), [])

    async def test_create_sets_id_and_timestamps(self):
        job = await self.jobs.create(job_create())
        uuid.UUID(job.id)
        self.assertEqual(job.created_at, self.clock.now)
        self.assertEqual(job.updated_at, job.created_at)
        self.assertEqual(await self.jobs.get(job.id), job)

    async def test_create_with_explicit_id(self):
        job_id = str(uuid.uuid4())
        job = await self.jobs.create(job_create().to_record(), job_id=job_id)
        self.assertEqual(job.id, job_id)

    async def test_create_ignores_client_supplied_bookkeeping_fields(self):
        record = {**job_create().to_record(), "id": "client-id", "created_at": "2001-01-01T00:00:00Z"}
        job = await self.jobs.create(record)
        self.assertNotEqual(job.id, "client-id")
        self.assertEqual(job.created_at, self.clock.now)

    async def test_create_with_missing_fields_raises_validation_error(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.jobs.create({"job_title": "Only a title"})
        fields = {d["field"] for d in ctx.exception.details}
        self.assertIn("companyName", fields)
        self.assertIn("appliedDate", fields)

    # Scenario B
    async def test_status_update_moves_job_between_listings(self):
        job = await self.jobs.create(job_create(JobStatus.PENDING))
        self.clock.advance(minutes=5)
        updated = await self.jobs.update(job.id, JobUpdate(status=JobStatus.INTERVIEW))

        self.assertEqual(updated.status, JobStatus.INTERVIEW)
        self.assertEqual(updated.created_at, job.created_at)
        self.assertGreater(updated.updated_at, job.updated_at)
        self.assertEqual(await self.jobs.list_by_status(JobStatus.PENDING), [])
        self.assertEqual([j.id for j in await self.jobs.list_by_status(JobStatus.INTERVIEW)], [job.id])

    async def test_updated_at_increases_even_when_clock_stands_still(self):
        job = await self.jobs.create(job_create())
        first = await self.jobs.update(job.id, {"notes": "one"})
        second = await self.jobs.update(job.id, {"notes": "two"})
        self.assertGreater(first.updated_at, job.updated_at)
        self.assertGreater(second.updated_at, first.updated_at)

    async def test_update_without_status_change_keeps_index(self):
        job = await self.jobs.create(job_create(JobStatus.PENDING))
        self.kv.failing = {"add_to_set", "remove_from_set"}
        updated = await self.jobs.update(job.id, JobUpdate(notes="followed up"))
        self.kv.failing = set()
        self.assertEqual(updated.notes, "followed up")
        self.assertEqual(updated.job_title, job.job_title)
        await self.assert_index_consistent()

    async def test_update_can_clear_company_link(self):
        job = await self.jobs.create(job_create())
        self.assertIsNotNone(job.company_link)
        updated = await self.jobs.update(job.id, JobUpdate.model_validate({"companyLink": ""}))
        self.assertIsNone(updated.company_link)

    async def test_update_missing_job_returns_none(self):
        self.assertIsNone(await self.jobs.update(str(uuid.uuid4()), {"notes": "x"}))

    async def test_update_with_invalid_status_raises_validation_error(self):
        job = await self.jobs.create(job_create())
        with self.assertRaises(ValidationError):
            await self.jobs.update(job.id, {"status": "Ghosted"})
        self.assertEqual((await self.jobs.get(job.id)).status, JobStatus.PENDING)

    # Scenario C
    async def test_deleted_job_is_gone_everywhere(self):
        job = await self.jobs.create(job_create(JobStatus.HIRED))
        self.assertTrue(await self.jobs.delete(job.id))
        self.assertIsNone(await self.jobs.get(job.id))
        for status in JobStatus:
            self.assertNotIn(job.id, [j.id for j in await self.jobs.list_by_status(status)])
        self.assertNotIn(job.id, await self.index.all_ids())

    async def test_delete_missing_job_returns_false(self):
        self.assertFalse(await self.jobs.delete(str(uuid.uuid4())))

    async def test_index_stays_consistent_through_a_mixed_sequence(self):
        a = await self.jobs.create(job_create(JobStatus.PENDING))
        b = await self.jobs.create(job_create(JobStatus.PENDING, jobTitle="Platform Engineer"))
        c = await self.jobs.create(job_create(JobStatus.INTERVIEW, jobTitle="SRE"))
        await self.assert_index_consistent()
        await self.jobs.update(a.id, {"status": "Interview"})
        await self.assert_index_consistent()
        await self.jobs.update(c.id, {"status": "Hired"})
        await self.jobs.update(b.id, {"status": "Reject"})
        await self.assert_index_consistent()
        await self.jobs.delete(a.id)
        await self.jobs.update(b.id, {"status": "Pending"})
        await self.assert_index_consistent()

    async def test_create_survives_index_failure(self):
        self.kv.failing = {"add_to_set"}
        with self.assertLogs("jobtracker.services.job_service", level="ERROR"):
            job = await self.jobs.create(job_create())
        self.kv.failing = set()
        self.assertEqual(await self.jobs.get(job.id), job)
        self.assertEqual(await self.jobs.list_by_status(JobStatus.PENDING), [])

        await self.jobs.rebuild_index()
        self.assertEqual([j.id for j in await self.jobs.list_by_status(JobStatus.PENDING)], [job.id])

    async def test_status_update_survives_partial_index_failure(self):
        job = await self.jobs.create(job_create(JobStatus.PENDING))
        self.kv.failing = {"remove_from_set"}
        updated = await self.jobs.update(job.id, {"status": "Hired"})
        self.kv.failing = set()

        self.assertEqual(updated.status, JobStatus.HIRED)
        self.assertEqual(await self.index.find_conflicts(), {job.id: [JobStatus.PENDING, JobStatus.HIRED]})
        # the stale membership is filtered out on read
        self.assertEqual(await self.jobs.list_by_status(JobStatus.PENDING), [])

        report = await self.jobs.rebuild_index()
        self.assertEqual(report.removed, 1)
        await self.assert_index_consistent()

    async def test_list_by_status_skips_ids_without_records(self):
        job = await self.jobs.create(job_create())
        await self.kv.add_to_set(status_set_key(JobStatus.PENDING), str(uuid.uuid4()))
        self.assertEqual([j.id for j in await self.jobs.list_by_status(JobStatus.PENDING)], [job.id])

    async def test_list_by_status_propagates_index_failure(self):
        self.kv.failing = {"members_of"}
        with self.assertRaises(StorageError):
            await self.jobs.list_by_status(JobStatus.PENDING)

    async def test_list_jobs_paginates_newest_first(self):
        created = []
        for n in range(5):
            created.append(await self.jobs.create(job_create(jobTitle=f"Role {n}")))
            self.clock.advance(minutes=1)

        jobs, pagination = await self.jobs.list_jobs(page=2, limit=2)

        self.assertEqual([j.job_title for j in jobs], ["Role 2", "Role 1"])
        self.assertEqual(pagination.total_items, 5)
        self.assertEqual(pagination.total_pages, 3)
        self.assertTrue(pagination.has_next_page)
        self.assertTrue(pagination.has_previous_page)

    async def test_list_jobs_clamps_page_and_limit(self):
        await self.jobs.create(job_create())
        _, pagination = await self.jobs.list_jobs(page=0, limit=1000)
        self.assertEqual(pagination.current_page, 1)
        self.assertEqual(pagination.items_per_page, 100)
        _, pagination = await self.jobs.list_jobs(page=1, limit=0)
        self.assertEqual(pagination.items_per_page, 1)


class TestJobServiceDuckDB(JobServiceContract, unittest.IsolatedAsyncioTestCase):

    def make_store(self, kv):
        self.con = connect(":memory:")
        return DuckDBJobStore(self.con)

    async def asyncTearDown(self):
        self.con.close()


class TestJobServiceKeyValue(JobServiceContract, unittest.IsolatedAsyncioTestCase):

    def make_store(self, kv):
        return KeyValueJobStore(kv)


if __name__ == "__main__":
    unittest.main()
