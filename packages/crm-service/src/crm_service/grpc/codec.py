"""Struct payloads on the wire.

Every CRM RPC carries a google.protobuf.Struct in both directions, so the
service needs no generated stubs. Numbers travel as doubles; the pydantic
request models coerce integral values back to int.
"""

from __future__ import annotations

from typing import Any

from google.protobuf import json_format, struct_pb2

SERVICE_NAME = "crm.v1.CustomerService"


def encode(payload: dict[str, Any]) -> struct_pb2.Struct:
    message = struct_pb2.Struct()
    message.update(payload)
    return message


def decode(message: struct_pb2.Struct) -> dict[str, Any]:
    return json_format.MessageToDict(message)


def deserialize(data: bytes) -> struct_pb2.Struct:
    return struct_pb2.Struct.FromString(data)


def serialize(message: struct_pb2.Struct) -> bytes:
    return message.SerializeToString()


def method_path(method: str) -> str:
    return f"/{SERVICE_NAME}/{method}"
