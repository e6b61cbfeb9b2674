# Copyright DataStax, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
from __future__ import annotations

import logging
import time

import pytest
from pytest_httpserver import HTTPServer
from werkzeug import Request, Response

from docapi.exceptions import (
    DataAPIHttpException,
    DataAPIResponseException,
    DataAPITimeoutException,
    UnexpectedDataAPIResponseException,
    _TimeoutContext,
)
from docapi.utils.api_commander import APICommander

COMMAND_PATH = "v1/ks/coll"
SECRET_TOKEN = "t0ken-n0t-t0-b3-l0gged"
CUSTOM_SECRET = "cust0m-s3cr3t"


def _make_commander(httpserver: HTTPServer) -> APICommander:
    return APICommander(
        api_endpoint=httpserver.url_for("/"),
        path=COMMAND_PATH,
        headers={
            "Token": SECRET_TOKEN,
            "X-Custom-Secret": CUSTOM_SECRET,
            "X-Suppressed": None,
        },
        callers=[("the_caller", "1.2")],
        redacted_header_names=["x-custom-secret"],
    )


def _slow_handler(request: Request) -> Response:
    time.sleep(0.5)
    return Response('{"status": {"ok": 1}}', content_type="application/json")


class TestAPICommander:
    @pytest.mark.describe("test of APICommander conversion methods")
    def test_apicommander_conversions(self, httpserver: HTTPServer) -> None:
        cmd1 = _make_commander(httpserver)
        cmd2 = _make_commander(httpserver)
        assert cmd1 == cmd2
        assert cmd1 != APICommander(
            api_endpoint=httpserver.url_for("/"),
            path="v1/ks/another_coll",
        )
        assert "the_caller" in repr(cmd1)
        assert cmd1.full_path == httpserver.url_for("/") + COMMAND_PATH
        assert "X-Suppressed" not in cmd1.full_headers
        assert cmd1.full_headers["User-Agent"].startswith("the_caller/1.2 docapi/")

    @pytest.mark.describe("test of APICommander request, sync")
    def test_apicommander_request_sync(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_oneshot_request(
            f"/{COMMAND_PATH}",
            method="POST",
            headers={"Token": SECRET_TOKEN, "X-Custom-Secret": CUSTOM_SECRET},
            json={"findOne": {"filter": {"a": 1}}},
        ).respond_with_json({"data": {"document": {"_id": "x", "a": 1}}})
        response = cmd.request(payload={"findOne": {"filter": {"a": 1}}})
        assert response == {"data": {"document": {"_id": "x", "a": 1}}}
        httpserver.check_assertions()

    @pytest.mark.describe("test of APICommander request, async")
    async def test_apicommander_request_async(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_oneshot_request(
            f"/{COMMAND_PATH}",
            method="POST",
            headers={"Token": SECRET_TOKEN},
            json={"countDocuments": {}},
        ).respond_with_json({"status": {"count": 3}})
        response = await cmd.async_request(payload={"countDocuments": {}})
        assert response == {"status": {"count": 3}}
        httpserver.check_assertions()

    @pytest.mark.describe("test of APICommander redaction of secrets in the logs")
    def test_apicommander_log_redaction(
        self,
        httpserver: HTTPServer,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_oneshot_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_json({"status": {"ok": 1}})
        with caplog.at_level(logging.DEBUG, logger="docapi"):
            cmd.request(payload={"do": {"something": True}})
        assert "Request payload" in caplog.text
        assert "Response status code: 200" in caplog.text
        assert SECRET_TOKEN not in caplog.text
        assert CUSTOM_SECRET not in caplog.text
        assert "'Token': '***'" in caplog.text
        assert "'X-Custom-Secret': '***'" in caplog.text

    @pytest.mark.describe("test of APICommander with errors in the response, sync")
    def test_apicommander_response_errors_sync(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        error_response = {
            "errors": [{"message": "Oops", "errorCode": "OOPS"}],
            "status": {"insertedIds": ["a"]},
        }
        httpserver.expect_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_json(error_response)

        with pytest.raises(DataAPIResponseException) as exc_info:
            cmd.request(payload={"insertMany": {"documents": [{}, {}]}})
        assert exc_info.value.command == {"insertMany": {"documents": [{}, {}]}}
        assert exc_info.value.error_descriptors[0].error_code == "OOPS"
        assert exc_info.value.partial_status == {"insertedIds": ["a"]}

        response = cmd.request(
            payload={"insertMany": {"documents": [{}, {}]}},
            raise_api_errors=False,
        )
        assert response == error_response

    @pytest.mark.describe("test of APICommander with errors in the response, async")
    async def test_apicommander_response_errors_async(
        self, httpserver: HTTPServer
    ) -> None:
        cmd = _make_commander(httpserver)
        error_response = {"errors": [{"message": "Oops", "errorCode": "OOPS"}]}
        httpserver.expect_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_json(error_response)

        with pytest.raises(DataAPIResponseException):
            await cmd.async_request(payload={"deleteOne": {}})
        response = await cmd.async_request(
            payload={"deleteOne": {}},
            raise_api_errors=False,
        )
        assert response == error_response

    @pytest.mark.describe("test of APICommander with unparseable responses")
    def test_apicommander_unparseable(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_oneshot_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_data("<html>not json</html>", status=200)
        with pytest.raises(UnexpectedDataAPIResponseException) as exc_info:
            cmd.request(payload={"findOne": {}})
        assert "findOne" in exc_info.value.text
        assert exc_info.value.raw_response == {"raw_response": "<html>not json</html>"}

        httpserver.expect_oneshot_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_json([1, 2, 3])
        with pytest.raises(UnexpectedDataAPIResponseException):
            cmd.request(payload={"findOne": {}})

    @pytest.mark.describe("test of APICommander with HTTP error statuses")
    async def test_apicommander_http_errors(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_data("Unauthorized", status=401)
        with pytest.raises(DataAPIHttpException) as exc_info:
            cmd.request(payload={"findOne": {}})
        assert exc_info.value.response.status_code == 401
        with pytest.raises(DataAPIHttpException):
            await cmd.async_request(payload={"findOne": {}})

    @pytest.mark.describe("test of APICommander request timeouts, sync")
    def test_apicommander_timeout_sync(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_handler(_slow_handler)
        with pytest.raises(DataAPITimeoutException) as exc_info:
            cmd.request(
                payload={"findOne": {}},
                timeout_context=_TimeoutContext(
                    request_ms=100, label="request_timeout_ms"
                ),
            )
        assert exc_info.value.timeout_type == "read"
        assert exc_info.value.endpoint == cmd.full_path
        assert exc_info.value.raw_payload == '{"findOne":{}}'
        assert "request_timeout_ms = 100 ms" in str(exc_info.value)

        # no timeout at all
        response = cmd.request(
            payload={"findOne": {}},
            timeout_context=_TimeoutContext(request_ms=0),
        )
        assert response == {"status": {"ok": 1}}

    @pytest.mark.describe("test of APICommander request timeouts, async")
    async def test_apicommander_timeout_async(self, httpserver: HTTPServer) -> None:
        cmd = _make_commander(httpserver)
        httpserver.expect_request(
            f"/{COMMAND_PATH}",
            method="POST",
        ).respond_with_handler(_slow_handler)
        with pytest.raises(DataAPITimeoutException) as exc_info:
            await cmd.async_request(
                payload={"findOne": {}},
                timeout_context=_TimeoutContext(request_ms=100),
            )
        assert exc_info.value.timeout_type == "read"
