"""CSV export and import of jobs."""
import csv
import io
import unittest
import uuid

from jobtracker.db import connect
from jobtracker.errors import ValidationError
from jobtracker.models.job import JobStatus
from jobtracker.services.csv_service import CSV_COLUMNS, CsvService
from jobtracker.services.index_service import StatusIndex
from jobtracker.services.job_service import JobService
from jobtracker.stores.job_store import DuckDBJobStore

from support import FakeClock, FlakyKeyValueStore, job_create

HEADER = "jobTitle,companyName,applicationLink,status,appliedDate"


class TestCsvService(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.con = connect(":memory:")
        self.clock = FakeClock()
        self.jobs = JobService(DuckDBJobStore(self.con), StatusIndex(FlakyKeyValueStore()), clock=self.clock)
        self.csv = CsvService(self.jobs)

    async def asyncTearDown(self):
        self.con.close()

    async def test_export_writes_header_and_one_row_per_job(self):
        first = await self.jobs.create(job_create(JobStatus.INTERVIEW))
        self.clock.advance(minutes=1)
        await self.jobs.create(job_create(jobTitle="Data Engineer, Platform"))

        rows = list(csv.DictReader(io.StringIO(await self.csv.export_csv())))

        self.assertEqual(len(rows), 2)
        self.assertEqual(list(rows[0].keys()), CSV_COLUMNS)
        self.assertEqual(rows[0]["jobTitle"], "Data Engineer, Platform")
        self.assertEqual(rows[1]["id"], first.id)
        self.assertEqual(rows[1]["status"], "Interview")
        self.assertEqual(rows[1]["appliedDate"], "2025-02-28")

    async def test_export_with_no_jobs_is_header_only(self):
        self.assertEqual((await self.csv.export_csv()).strip(), ",".join(CSV_COLUMNS))

    async def test_import_creates_rows_without_id(self):
        text = (
            f"{HEADER}\n"
            "Backend Engineer,Acme,https://acme.example.com/jobs/1,Pending,2025-01-10\n"
            "SRE,Globex,https://globex.example.com/jobs/2,Hired,2025-01-12\n"
        )
        result = await self.csv.import_csv(text)

        self.assertEqual((result.created, result.updated, result.failed), (2, 0, 0))
        self.assertTrue(result.success)
        hired = await self.jobs.list_by_status(JobStatus.HIRED)
        self.assertEqual([j.company_name for j in hired], ["Globex"])

    async def test_import_defaults_optional_columns(self):
        text = "jobTitle,companyName,applicationLink\nQA,Initech,https://initech.example.com/qa\n"
        await self.csv.import_csv(text)
        [job] = await self.jobs.all_jobs()
        self.assertEqual(job.status, JobStatus.PENDING)
        self.assertEqual(job.requirements, "")
        self.assertIsNone(job.company_link)

    async def test_import_updates_known_id_and_moves_index(self):
        job = await self.jobs.create(job_create(JobStatus.PENDING))
        text = (
            f"id,{HEADER},notes\n"
            f"{job.id},Backend Engineer,Acme,https://acme.example.com/careers/42,Reject,2025-02-28,no reply\n"
        )
        result = await self.csv.import_csv(text)

        self.assertEqual((result.created, result.updated), (0, 1))
        updated = await self.jobs.get(job.id)
        self.assertEqual(updated.status, JobStatus.REJECT)
        self.assertEqual(updated.notes, "no reply")
        self.assertEqual(updated.created_at, job.created_at)
        self.assertEqual(await self.jobs.list_by_status(JobStatus.PENDING), [])

    async def test_import_keeps_unknown_uuid(self):
        job_id = str(uuid.uuid4())
        text = f"id,{HEADER}\n{job_id},SRE,Globex,https://globex.example.com/jobs/2,Pending,2025-01-12\n"
        result = await self.csv.import_csv(text)
        self.assertEqual(result.created, 1)
        self.assertIsNotNone(await self.jobs.get(job_id))

    async def test_upper_case_id_is_stored_lower_case(self):
        job_id = str(uuid.uuid4())
        row = "SRE,Globex,https://globex.example.com/jobs/2,Pending,2025-01-12\n"
        result = await self.csv.import_csv(f"id,{HEADER}\n{job_id.upper()},{row}")
        self.assertEqual(result.created, 1)
        self.assertIsNotNone(await self.jobs.get(job_id))

        result = await self.csv.import_csv(f"id,{HEADER}\n{job_id},{row}")
        self.assertEqual((result.created, result.updated), (0, 1))
        self.assertEqual(len(await self.jobs.all_jobs()), 1)

    async def test_bad_rows_are_reported_and_good_rows_imported(self):
        text = (
            f"id,{HEADER}\n"
            "not-a-uuid,SRE,Globex,https://globex.example.com/jobs/2,Pending,2025-01-12\n"
            ",,Globex,https://globex.example.com/jobs/3,Pending,2025-01-12\n"
            ",Analyst,Globex,https://globex.example.com/jobs/4,Ghosted,2025-01-12\n"
            ",Analyst,Globex,https://globex.example.com/jobs/5,Pending,2025-01-12\n"
        )
        result = await self.csv.import_csv(text)

        self.assertEqual((result.created, result.failed), (1, 3))
        self.assertTrue(result.success)
        self.assertEqual([e.row for e in result.errors], [1, 2, 3])
        self.assertIn("not-a-uuid", result.errors[0].error)
        self.assertIn("jobTitle", result.errors[1].error)
        self.assertIn("status", result.errors[2].error)

    async def test_all_rows_failing_is_not_a_success(self):
        text = f"{HEADER}\n,Globex,https://globex.example.com/jobs/3,Pending,2025-01-12\n"
        result = await self.csv.import_csv(text)
        self.assertFalse(result.success)
        self.assertEqual(result.failed, 1)

    async def test_bom_whitespace_and_blank_lines_are_tolerated(self):
        text = (
            "\ufeff jobTitle , companyName ,applicationLink\n"
            "\n"
            "  Backend Engineer , Acme ,https://acme.example.com/jobs/1\n"
            ",,\n"
        )
        result = await self.csv.import_csv(text)
        self.assertEqual(result.created, 1)
        [job] = await self.jobs.all_jobs()
        self.assertEqual((job.job_title, job.company_name), ("Backend Engineer", "Acme"))

    async def test_export_then_import_updates_in_place(self):
        await self.jobs.create(job_create(JobStatus.INTERVIEW))
        await self.jobs.create(job_create(JobStatus.HIRED, companyLink=""))
        result = await self.csv.import_csv(await self.csv.export_csv())
        self.assertEqual((result.created, result.updated, result.failed), (0, 2, 0))
        self.assertEqual(len(await self.jobs.all_jobs()), 2)

    def test_empty_csv_is_rejected(self):
        for text in ("", f"{HEADER}\n", f"{HEADER}\n\n,,,,\n"):
            with self.subTest(text=text):
                with self.assertRaises(ValidationError) as ctx:
                    self.csv.parse(text)
                self.assertEqual(ctx.exception.details[0]["field"], "file")


if __name__ == "__main__":
    unittest.main()
