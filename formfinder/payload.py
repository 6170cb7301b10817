"""
Scan request/response carried over the ECS Exec channel.

The request is JSON, base64 encoded so it survives the shell unchanged, and is
handed to the Node agent in ``remote/scan_forms.js`` through an environment
variable. The agent answers with a single ``FORMFINDER_RESPONSE <json>`` line
in the session output.
"""
import base64
import json
import os
import shlex
from dataclasses import asdict, dataclass

import jsonschema

from .exceptions import RemoteScriptFailure
from .scanner import FormMatch

AGENT_PATH = os.path.join(os.path.dirname(__file__), "remote", "scan_forms.js")
REQUEST_ENV_VAR = "FORMFINDER_REQUEST"
RESPONSE_MARKER = "FORMFINDER_RESPONSE "

RESPONSE_SCHEMA = {
    "oneOf": [
        {
            "type": "object",
            "properties": {
                "error": {"type": "string"},
                "stack": {"type": "string"},
            },
            "required": ["error"],
        },
        {
            "type": "object",
            "properties": {
                "total_keys": {"type": "integer", "minimum": 0},
                "matches": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "form_id": {"type": "string"},
                            "sha256": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
                            "size": {"type": "integer", "minimum": 0},
                            "page_count": {"type": "integer", "minimum": 0},
                        },
                        "required": ["form_id", "sha256", "size", "page_count"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["total_keys", "matches"],
            "not": {"required": ["error"]},
        },
    ]
}


@dataclass(frozen=True)
class ScanRequest:
    key_prefix: str
    reference_paths: tuple
    redis_uri_env: tuple
    redis_host_suffix: str = None
    tls: bool = True
    tls_verify: bool = False

    @classmethod
    def from_config(cls, scan_config):
        return cls(
            key_prefix=scan_config["key_prefix"],
            reference_paths=tuple(scan_config["reference_paths"]),
            redis_uri_env=tuple(scan_config["redis_uri_env"]),
            redis_host_suffix=scan_config.get("redis_host_suffix"),
            tls=scan_config["tls"],
            tls_verify=scan_config["tls_verify"],
        )

    def encode(self):
        data = json.dumps(asdict(self), sort_keys=True).encode("utf-8")
        return base64.b64encode(data).decode("ascii")

    @classmethod
    def decode(cls, encoded):
        data = json.loads(base64.b64decode(encoded))
        data["reference_paths"] = tuple(data["reference_paths"])
        data["redis_uri_env"] = tuple(data["redis_uri_env"])
        return cls(**data)


def load_agent():
    with open(AGENT_PATH, "r") as f:
        return f.read()


def build_command(request, working_dir, agent_source=None):
    """
    Build the single shell command run in the container: decode the agent and
    pipe it to node, with the encoded request in the environment.
    """
    if agent_source is None:
        agent_source = load_agent()
    agent = base64.b64encode(agent_source.encode("utf-8")).decode("ascii")
    return (
        f'/bin/sh -c "cd {shlex.quote(working_dir)}'
        f" && echo '{agent}' | base64 -d"
        f" | {REQUEST_ENV_VAR}='{request.encode()}' node\""
    )


def find_response_line(output):
    payload = None
    for line in output.splitlines():
        line = line.strip()
        if line.startswith(RESPONSE_MARKER):
            payload = line[len(RESPONSE_MARKER) :]
    return payload


def parse_response(output):
    """Return (total_keys, [FormMatch, ...]) from the captured session output."""
    payload = find_response_line(output)
    if payload is None:
        raise RemoteScriptFailure(
            "Remote scan produced no response", details=output.strip() or None
        )

    try:
        response = json.loads(payload)
    except ValueError as e:
        raise RemoteScriptFailure(f"Remote scan response is not valid JSON: {e}")

    try:
        jsonschema.validate(instance=response, schema=RESPONSE_SCHEMA)
    except jsonschema.exceptions.ValidationError as e:
        raise RemoteScriptFailure(f"Remote scan response is malformed: {e.message}")

    if "error" in response:
        raise RemoteScriptFailure(
            f"Remote scan failed: {response['error']}", details=response.get("stack")
        )

    return response["total_keys"], [FormMatch(**m) for m in response["matches"]]
