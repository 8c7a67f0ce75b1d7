import asyncio
import io
import unittest

from fastapi import HTTPException, UploadFile

from snapbox.config import Settings
from snapbox.uploads import read_upload


class CountingStream(io.BytesIO):
    def __init__(self, data: bytes):
        super().__init__(data)
        self.reads = []

    def read(self, size=-1):
        chunk = super().read(size)
        self.reads.append(len(chunk))
        return chunk


class ReadUploadTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings(max_upload_bytes=10)

    def test_reads_whole_file_within_limit(self):
        upload = UploadFile(CountingStream(b"0123456789"), filename="a.png")
        data = asyncio.run(read_upload(upload, self.settings, chunk_size=4))
        self.assertEqual(data, b"0123456789")

    def test_stops_reading_once_limit_is_passed(self):
        stream = CountingStream(b"x" * 1000)
        upload = UploadFile(stream, filename="a.png")

        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(read_upload(upload, self.settings, chunk_size=4))

        self.assertEqual(ctx.exception.status_code, 413)
        self.assertEqual(sum(stream.reads), 11)


if __name__ == "__main__":
    unittest.main()
