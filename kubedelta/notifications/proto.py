"""Message classes for the hub's ``EventService``.

The schema is small and fixed, so the file descriptor is declared here and
the message classes are built by the protobuf runtime instead of being
generated by protoc:

    service EventService {
      rpc EmitEvent (EventMessage) returns (EventResponse) {}
    }
    message EventMessage {
      string namespace = 1;
      string resourceKey = 2;
      string eventType = 3;
      bytes data = 4;
      string apiKey = 5;
    }
    message EventResponse {
      bool acknowledged = 1;
    }
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "kube_controller_event"
SERVICE = f"{PACKAGE}.EventService"
EMIT_EVENT_METHOD = f"/{SERVICE}/EmitEvent"

_FIELD = descriptor_pb2.FieldDescriptorProto


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="event/event.proto",
        package=PACKAGE,
        syntax="proto3",
    )

    request = file_proto.message_type.add(name="EventMessage")
    for number, (name, field_type) in enumerate(
        [
            ("namespace", _FIELD.TYPE_STRING),
            ("resourceKey", _FIELD.TYPE_STRING),
            ("eventType", _FIELD.TYPE_STRING),
            ("data", _FIELD.TYPE_BYTES),
            ("apiKey", _FIELD.TYPE_STRING),
        ],
        start=1,
    ):
        request.field.add(
            name=name,
            json_name=name,
            number=number,
            type=field_type,
            label=_FIELD.LABEL_OPTIONAL,
        )

    response = file_proto.message_type.add(name="EventResponse")
    response.field.add(
        name="acknowledged",
        json_name="acknowledged",
        number=1,
        type=_FIELD.TYPE_BOOL,
        label=_FIELD.LABEL_OPTIONAL,
    )

    service = file_proto.service.add(name="EventService")
    service.method.add(
        name="EmitEvent",
        input_type=f".{PACKAGE}.EventMessage",
        output_type=f".{PACKAGE}.EventResponse",
    )
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())

EventMessage = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.EventMessage"))
EventResponse = message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.EventResponse"))

__all__ = ["EMIT_EVENT_METHOD", "EventMessage", "EventResponse", "SERVICE"]
