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

from dataclasses import FrozenInstanceError

import pytest

from docapi.operations import (
    DeleteMany,
    DeleteOne,
    InsertOne,
    ReplaceOne,
    UpdateMany,
    UpdateOne,
)


class TestOperations:
    @pytest.mark.describe("test of operations rendering into commands")
    def test_operations_to_command(self) -> None:
        assert InsertOne({"a": 1}).to_command() == {
            "insertOne": {"document": {"a": 1}}
        }
        assert UpdateOne({"a": 1}, {"$set": {"b": 2}}).to_command() == {
            "updateOne": {
                "filter": {"a": 1},
                "update": {"$set": {"b": 2}},
                "options": {"upsert": False},
            }
        }
        assert UpdateOne(
            {"a": 1}, {"$inc": {"b": 1}}, sort={"c": -1}, upsert=True
        ).to_command() == {
            "updateOne": {
                "filter": {"a": 1},
                "update": {"$inc": {"b": 1}},
                "sort": {"c": -1},
                "options": {"upsert": True},
            }
        }
        assert UpdateMany({}, {"$unset": {"x": ""}}).to_command() == {
            "updateMany": {
                "filter": {},
                "update": {"$unset": {"x": ""}},
                "options": {"upsert": False},
            }
        }
        assert ReplaceOne({"_id": "z"}, {"r": 1}, upsert=True).to_command() == {
            "findOneAndReplace": {
                "filter": {"_id": "z"},
                "replacement": {"r": 1},
                "options": {"upsert": True},
            }
        }
        assert DeleteOne({"a": 1}, sort={"b": 1}).to_command() == {
            "deleteOne": {"filter": {"a": 1}, "sort": {"b": 1}}
        }
        assert DeleteOne({}).to_command() == {"deleteOne": {"filter": {}}}
        assert DeleteMany({"a": {"$gt": 1}}).to_command() == {
            "deleteMany": {"filter": {"a": {"$gt": 1}}}
        }

    @pytest.mark.describe("test of operations validation at creation")
    def test_operations_validation(self) -> None:
        with pytest.raises(ValueError, match="document"):
            InsertOne(["not", "a", "dict"])  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="filter"):
            UpdateOne(None, {"$set": {"a": 1}})  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="update"):
            UpdateOne({}, "set a to 1")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="sort"):
            UpdateOne({}, {"$set": {"a": 1}}, sort=["a"])  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="upsert"):
            UpdateOne({}, {"$set": {"a": 1}}, upsert="yes")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="upsert"):
            UpdateMany({}, {"$set": {"a": 1}}, upsert=1)  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="replacement"):
            ReplaceOne({}, None)  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="filter"):
            DeleteOne("a == 1")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="filter"):
            DeleteMany(None)  # type: ignore[arg-type]

    @pytest.mark.describe("test of operations immutability and equality")
    def test_operations_immutability(self) -> None:
        op1 = UpdateOne({"a": 1}, {"$set": {"b": 2}}, upsert=True)
        op2 = UpdateOne({"a": 1}, {"$set": {"b": 2}}, upsert=True)
        assert op1 == op2
        assert op1 != UpdateOne({"a": 1}, {"$set": {"b": 2}})
        with pytest.raises(FrozenInstanceError):
            op1.upsert = False  # type: ignore[misc]
        with pytest.raises(FrozenInstanceError):
            InsertOne({"a": 1}).document = {"a": 2}  # type: ignore[misc]

    @pytest.mark.describe("test of operations isolated from later changes to inputs")
    def test_operations_copy_inputs(self) -> None:
        document = {"_id": "a", "tags": ["x"]}
        insert_op = InsertOne(document)
        document["_id"] = "changed"
        document["tags"].append("y")
        assert insert_op.to_command() == {
            "insertOne": {"document": {"_id": "a", "tags": ["x"]}}
        }

        filter = {"a": {"$in": [1, 2]}}
        update = {"$set": {"b": 2}}
        sort = {"c": 1}
        update_op = UpdateOne(filter, update, sort=sort)
        update_many_op = UpdateMany(filter, update)
        replace_op = ReplaceOne(filter, {"z": 0}, sort=sort)
        delete_op = DeleteOne(filter, sort=sort)
        delete_many_op = DeleteMany(filter)
        filter["a"]["$in"].append(3)
        update["$set"] = "not a mapping anymore"
        sort["c"] = -1

        assert update_op.to_command()["updateOne"] == {
            "filter": {"a": {"$in": [1, 2]}},
            "update": {"$set": {"b": 2}},
            "sort": {"c": 1},
            "options": {"upsert": False},
        }
        assert update_many_op.to_command()["updateMany"]["update"] == {
            "$set": {"b": 2}
        }
        assert replace_op.to_command()["findOneAndReplace"]["sort"] == {"c": 1}
        assert delete_op.to_command()["deleteOne"]["filter"] == {"a": {"$in": [1, 2]}}
        assert delete_many_op.to_command() == {
            "deleteMany": {"filter": {"a": {"$in": [1, 2]}}}
        }

        # the rendered command can be altered without affecting the operation
        command = delete_many_op.to_command()
        command["deleteMany"]["filter"]["a"] = 0
        assert delete_many_op.filter == {"a": {"$in": [1, 2]}}
