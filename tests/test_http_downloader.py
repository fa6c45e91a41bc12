import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from tubetoolkit.exceptions import AcquisitionError, ProxyBlockedError
from tubetoolkit.media.acquirer import MediaAcquirer
from tubetoolkit.media.http_downloader import HttpDownloader
from tubetoolkit.models.job import Job

PAYLOAD = b"0123456789" * 50_000


async def handle(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    if name == "limited.bin":
        return web.Response(status=429, text="slow down")
    if name == "broken.bin":
        return web.Response(status=500, text="boom")
    return web.Response(body=PAYLOAD, content_type="application/octet-stream")


def run_download(tmp_path, name, acquirer=None):
    samples, flagged = [], []

    async def scenario():
        app = web.Application()
        app.router.add_get("/files/{name}", handle)
        server = TestServer(app)
        await server.start_server()
        try:
            job = Job(url=str(server.make_url(f"/files/{name}")), variant="file")
            await (acquirer or HttpDownloader(progress_interval=0)).attempt(
                job,
                None,
                tmp_path,
                lambda p, r, e: samples.append((p, r, e)),
                flagged.append,
            )
            return job
        finally:
            await server.close()

    return asyncio.run(scenario()), samples, flagged


def test_downloads_file_and_reports_progress(tmp_path):
    job, samples, flagged = run_download(tmp_path, "clip.bin")

    target = tmp_path / "clip.bin"
    assert target.read_bytes() == PAYLOAD
    assert job.output_path == str(target)
    assert job.size_bytes == len(PAYLOAD)
    assert job.title == "clip"
    assert samples[-1][0] == 100.0
    assert [p for p, _, _ in samples] == sorted(p for p, _, _ in samples)
    assert flagged == []
    assert not list(tmp_path.glob("*.part"))


def test_media_acquirer_routes_files_to_http(tmp_path):
    class Unused:
        async def attempt(self, *args):
            raise AssertionError("yt-dlp should not be used for direct files")

    acquirer = MediaAcquirer(Unused(), HttpDownloader(progress_interval=0))
    job, _, _ = run_download(tmp_path, "routed.bin", acquirer)
    assert (tmp_path / "routed.bin").exists()
    assert job.output_path.endswith("routed.bin")


def test_rate_limited_response_is_proxy_blocked(tmp_path):
    with pytest.raises(ProxyBlockedError, match="429"):
        run_download(tmp_path, "limited.bin")
    assert not list(tmp_path.glob("*.part"))


def test_server_error_is_acquisition_error(tmp_path):
    with pytest.raises(AcquisitionError, match="500") as exc:
        run_download(tmp_path, "broken.bin")
    assert not isinstance(exc.value, ProxyBlockedError)
