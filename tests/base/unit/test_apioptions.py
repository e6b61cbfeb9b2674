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

import pytest

from docapi.utils.api_options import APIOptions, TimeoutOptions, defaultAPIOptions


class TestAPIOptions:
    @pytest.mark.describe("test of header inheritance in APIOptions")
    def test_apioptions_headers(self) -> None:
        opts_d = defaultAPIOptions()
        opts_1 = opts_d.with_override(
            APIOptions(
                additional_headers={"d": "y", "D": None},
                redacted_header_names={"x", "y"},
            )
        )
        opts_2 = opts_d.with_override(
            APIOptions(
                additional_headers={"D": "y"},
                redacted_header_names={"x"},
            )
        ).with_override(
            APIOptions(
                additional_headers={"d": "y", "D": None},
                redacted_header_names={"y"},
            )
        )

        assert opts_1 == opts_2
        assert opts_1.additional_headers == {"d": "y", "D": None}
        assert opts_1.redacted_header_names == {"x", "y"}

    @pytest.mark.describe("test of timeout inheritance in APIOptions")
    def test_apioptions_timeouts(self) -> None:
        opts_d = defaultAPIOptions()
        opts_1 = opts_d.with_override(
            APIOptions(timeout_options=TimeoutOptions(request_timeout_ms=123))
        )
        assert opts_1.timeout_options.request_timeout_ms == 123
        assert (
            opts_1.timeout_options.general_method_timeout_ms
            == opts_d.timeout_options.general_method_timeout_ms
        )
        opts_2 = opts_1.with_override(
            APIOptions(timeout_options=TimeoutOptions(general_method_timeout_ms=0))
        )
        assert opts_2.timeout_options.request_timeout_ms == 123
        assert opts_2.timeout_options.general_method_timeout_ms == 0

    @pytest.mark.describe("test of plain-setting overrides in APIOptions")
    def test_apioptions_overrides(self) -> None:
        opts_d = defaultAPIOptions()
        assert opts_d.with_override(None) is opts_d
        assert opts_d.with_override(APIOptions()) == opts_d

        opts_1 = opts_d.with_override(
            APIOptions(token="t1", callers=[("c", "1")], api_version="v9")
        )
        assert opts_1.token == "t1"
        assert opts_1.callers == [("c", "1")]
        assert opts_1.api_version == "v9"
        assert opts_1.api_path == opts_d.api_path

        # None is a value like any other, and overrides
        opts_2 = opts_1.with_override(APIOptions(token=None))
        assert opts_2.token is None
        assert opts_2.callers == [("c", "1")]

    @pytest.mark.describe("test of secret masking in the APIOptions repr")
    def test_apioptions_repr(self) -> None:
        opts_p = APIOptions(token="very-secret-token", api_version="v1")
        assert "very-secret-token" not in repr(opts_p)
        assert "token=***" in repr(opts_p)
        assert "api_version='v1'" in repr(opts_p)
        assert "callers" not in repr(opts_p)

        opts_f = defaultAPIOptions().with_override(opts_p)
        assert "very-secret-token" not in repr(opts_f)
        assert "callers=[]" in repr(opts_f)
