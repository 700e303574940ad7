"""
In-memory stand-ins for the boto3 ``Table`` resource and CloudWatch client.

FakeTable understands the key, condition and filter expressions the stores in
this package send, and returns numbers as Decimal the way boto3 does. It lets
the stores run in tests without DynamoDB Local or network access.

Example:
    table = FakeTable()
    store = DynamoDBCacheStore(config={"cleanup_interval_ms": 0}, table=table)
"""
import copy
import re
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from . import schema

_COMPARISON = re.compile(r"^(\S+) (<=|>=|<>|=|<|>) (\S+)$")
_FUNCTION = re.compile(r"^(\w+)\((.*)\)$")


def client_error(code: str, operation: str = "PutItem", status: int = 400) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} raised by FakeTable"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


class _FakeClient:
    def __init__(self, table: "FakeTable") -> None:
        self._table = table
        self.closed = False

    def batch_write_item(self, RequestItems: Dict[str, List[Dict]]) -> Dict[str, Any]:
        self._table._maybe_fail("batch_write_item")
        requests = RequestItems[self._table.name]
        unprocessed = []
        with self._table._lock:
            for index, request in enumerate(requests):
                if index < self._table.unprocessed_per_batch:
                    unprocessed.append(request)
                    continue
                key = request["DeleteRequest"]["Key"]
                self._table.items.pop((key[schema.PK], key[schema.SK]), None)
            self._table.unprocessed_per_batch = 0
            self._table.batch_calls += 1
        return {"UnprocessedItems": {self._table.name: unprocessed} if unprocessed else {}}

    def close(self) -> None:
        self.closed = True


class _Meta:
    def __init__(self, client: _FakeClient) -> None:
        self.client = client


class FakeTable:
    """In-memory single table keyed on (PK, SK)."""

    def __init__(self, name: str = "test-table", page_size: Optional[int] = None) -> None:
        self.name = name
        self.page_size = page_size
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.unprocessed_per_batch = 0
        self.batch_calls = 0
        self._failures: List[Tuple[str, BaseException]] = []
        self._lock = threading.Lock()
        self.meta = _Meta(_FakeClient(self))

    # Fault injection

    def fail_next(self, method: str, error: BaseException, times: int = 1) -> None:
        self._failures.extend([(method, error)] * times)

    def _maybe_fail(self, method: str) -> None:
        with self._lock:
            self.calls.append(method)
            for index, (name, error) in enumerate(self._failures):
                if name == method:
                    del self._failures[index]
                    raise error

    # Expression helpers

    @staticmethod
    def _resolve(item: Dict[str, Any], path: str, names: Dict[str, str]) -> Any:
        value: Any = item
        for part in path.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(names.get(part, part))
        return value

    def _clause(self, item: Optional[Dict], clause: str, names: Dict, values: Dict) -> bool:
        clause = clause.strip()
        function = _FUNCTION.match(clause)
        if function:
            name, args = function.group(1), [a.strip() for a in function.group(2).split(",")]
            if name == "attribute_not_exists":
                return item is None or self._resolve(item, args[0], names) is None
            if name == "begins_with":
                actual = self._resolve(item or {}, args[0], names)
                return isinstance(actual, str) and actual.startswith(values[args[1]])
            raise AssertionError(f"Unsupported function {name}")

        match = _COMPARISON.match(clause)
        if not match:
            raise AssertionError(f"Unsupported clause {clause}")
        if item is None:
            return False
        left, op, right = match.groups()
        actual = self._resolve(item, left, names)
        expected = values[right]
        if actual is None:
            return False
        if op == "=":
            return actual == expected
        if op == "<>":
            return actual != expected
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        return actual >= expected

    def _condition(self, item: Optional[Dict], expression: str, names: Dict, values: Dict) -> bool:
        return any(
            all(self._clause(item, clause, names, values) for clause in branch.split(" AND "))
            for branch in expression.split(" OR ")
        )

    def _check(self, item: Optional[Dict], kwargs: Dict, operation: str) -> None:
        expression = kwargs.get("ConditionExpression")
        if expression and not self._condition(
            item,
            expression,
            kwargs.get("ExpressionAttributeNames", {}),
            kwargs.get("ExpressionAttributeValues", {}),
        ):
            raise client_error("ConditionalCheckFailedException", operation)

    def _page(self, items: List[Dict], kwargs: Dict) -> Dict[str, Any]:
        start = int(kwargs.get("ExclusiveStartKey", {}).get("offset", 0))
        end = len(items) if self.page_size is None else start + self.page_size
        page = items[start:end]
        response: Dict[str, Any] = {}
        if kwargs.get("Select") == "COUNT":
            response["Count"] = len(page)
        else:
            response["Items"] = [copy.deepcopy(i) for i in page]
        if end < len(items):
            response["LastEvaluatedKey"] = {"offset": end}
        return response

    # Table API

    def get_item(self, Key: Dict[str, str], **kwargs: Any) -> Dict[str, Any]:
        self._maybe_fail("get_item")
        with self._lock:
            item = self.items.get((Key[schema.PK], Key[schema.SK]))
            return {"Item": copy.deepcopy(item)} if item is not None else {}

    def put_item(self, Item: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        self._maybe_fail("put_item")
        with self._lock:
            key = (Item[schema.PK], Item[schema.SK])
            self._check(self.items.get(key), kwargs, "PutItem")
            self.items[key] = _to_dynamo(copy.deepcopy(Item))
        return {}

    def update_item(self, Key: Dict[str, str], UpdateExpression: str, **kwargs: Any) -> Dict[str, Any]:
        self._maybe_fail("update_item")
        names = kwargs.get("ExpressionAttributeNames", {})
        values = kwargs.get("ExpressionAttributeValues", {})
        with self._lock:
            key = (Key[schema.PK], Key[schema.SK])
            item = self.items.get(key)
            self._check(item, kwargs, "UpdateItem")
            if item is None:
                item = dict(Key)
                self.items[key] = item
            assert UpdateExpression.startswith("SET ")
            for assignment in UpdateExpression[4:].split(","):
                path, value = [p.strip() for p in assignment.split("=")]
                parts = [names.get(p, p) for p in path.split(".")]
                target = item
                for part in parts[:-1]:
                    target = target.setdefault(part, {})
                target[parts[-1]] = _to_dynamo(values[value])
        return {}

    def delete_item(self, Key: Dict[str, str], **kwargs: Any) -> Dict[str, Any]:
        self._maybe_fail("delete_item")
        with self._lock:
            self.items.pop((Key[schema.PK], Key[schema.SK]), None)
        return {}

    def query(self, KeyConditionExpression: str, **kwargs: Any) -> Dict[str, Any]:
        self._maybe_fail("query")
        names = kwargs.get("ExpressionAttributeNames", {})
        values = kwargs.get("ExpressionAttributeValues", {})
        sort_attr = schema.GSI1SK if kwargs.get("IndexName") == schema.GSI1 else schema.SK
        with self._lock:
            matches = [
                i for i in self.items.values()
                if self._condition(i, KeyConditionExpression, names, values)
            ]
        matches.sort(key=lambda i: i.get(sort_attr, ""), reverse=not kwargs.get("ScanIndexForward", True))
        return self._page(matches, kwargs)

    def scan(self, **kwargs: Any) -> Dict[str, Any]:
        self._maybe_fail("scan")
        expression = kwargs.get("FilterExpression")
        with self._lock:
            matches = [
                i for i in self.items.values()
                if expression is None
                or self._condition(
                    i,
                    expression,
                    kwargs.get("ExpressionAttributeNames", {}),
                    kwargs.get("ExpressionAttributeValues", {}),
                )
            ]
        return self._page(matches, kwargs)

    # Inspection

    def rows(self, prefix: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(i) for (pk, _), i in self.items.items() if pk.startswith(prefix)]



class FakeCloudWatchClient:
    """Records ``put_metric_data`` calls; fails the next ``fail_next`` of them."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.fail_next = 0

    def put_metric_data(self, Namespace: str, MetricData: List[Dict[str, Any]]) -> Dict[str, Any]:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise client_error("Throttling", "PutMetricData")
        if len(MetricData) > 20:
            raise client_error("InvalidParameterValue", "PutMetricData")
        self.calls.append({"Namespace": Namespace, "MetricData": list(MetricData)})
        return {}

    @property
    def datums(self) -> List[Dict[str, Any]]:
        return [datum for call in self.calls for datum in call["MetricData"]]
