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

# Defaults/settings for the Data API URL
DEFAULT_API_PATH = ""
DEFAULT_API_VERSION = "v1"
DEFAULT_KEYSPACE = "default_keyspace"

# Defaults/settings for Data API requests
DEFAULT_DATA_API_AUTH_HEADER = "Token"
DEFAULT_REQUEST_TIMEOUT_MS = 10000
DEFAULT_GENERAL_METHOD_TIMEOUT_MS = 30000

# The Data API serves find results in pages of this size (not configurable)
DATA_API_FIND_PAGE_SIZE = 20

# insertMany accepts at most this many documents per request
DEFAULT_INSERT_MANY_CHUNK_SIZE = 20
DEFAULT_INSERT_MANY_CONCURRENCY = 8
DEFAULT_BULK_WRITE_CONCURRENCY = 8

# countDocuments stops counting (and reports moreData) beyond this
DATA_API_MAX_COUNT_DOCUMENTS = 1000

# Redaction of secrets in logging
FIXED_SECRET_PLACEHOLDER = "***"
DEFAULT_REDACTED_HEADER_NAMES = {
    DEFAULT_DATA_API_AUTH_HEADER,
}
