import base64
import hashlib
import json
import shutil
import subprocess

import pytest

from formfinder.config_loader import ConfigLoader
from formfinder.exceptions import RemoteScriptFailure
from formfinder.payload import REQUEST_ENV_VAR, ScanRequest, load_agent, parse_response

NODE = shutil.which("node")

pytestmark = pytest.mark.skipif(NODE is None, reason="node is not installed")

SCAN_CONFIG = json.loads(ConfigLoader.DEFAULT_CONFIG)["scan"]
REFERENCE = SCAN_CONFIG["reference_paths"]

# Stand-in for ioredis: serves base64 values from FAKE_REDIS_DATA, or fails
# every command with FAKE_REDIS_ERROR.
FAKE_IOREDIS = """
const data = JSON.parse(process.env.FAKE_REDIS_DATA || '{}');
const failure = process.env.FAKE_REDIS_ERROR;

class Redis {
  constructor(uri, options) {
    this.uri = uri;
    this.options = options;
  }
  async keys(pattern) {
    if (failure) throw new Error(failure);
    const prefix = pattern.replace(/\\*$/, '');
    return Object.keys(data).filter((key) => key.startsWith(prefix));
  }
  async getBuffer(key) {
    if (failure) throw new Error(failure);
    return key in data ? Buffer.from(data[key], 'base64') : null;
  }
  disconnect() {}
}

module.exports = Redis;
"""


def form_bytes(paths, **extra):
    body = {"configuration": {"pages": [{"path": path} for path in paths]}}
    body.update(extra)
    return json.dumps(body, ensure_ascii=False).encode("utf-8")


@pytest.fixture
def node_modules(tmp_path):
    package = tmp_path / "node_modules" / "ioredis"
    package.mkdir(parents=True)
    (package / "index.js").write_text(FAKE_IOREDIS)
    return tmp_path / "node_modules"


def run_agent(node_modules, entries=None, error=None, redis_uri="rediss://cache:6379"):
    """Pipe the agent into node the way the exec command does; return the output."""
    env = {
        "NODE_PATH": str(node_modules),
        REQUEST_ENV_VAR: ScanRequest.from_config(SCAN_CONFIG).encode(),
        "FAKE_REDIS_DATA": json.dumps(
            {
                key: base64.b64encode(value).decode("ascii")
                for key, value in (entries or {}).items()
            }
        ),
    }
    if redis_uri:
        env["REDIS_URI"] = redis_uri
    if error:
        env["FAKE_REDIS_ERROR"] = error
    proc = subprocess.run(
        [NODE],
        input=load_agent().encode("utf-8"),
        cwd=str(node_modules.parent),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        timeout=30,
    )
    return proc.returncode, proc.stdout.decode("utf-8")


class TestScanAgent:
    def test_groups_identical_matching_forms(self, node_modules):
        matching = form_bytes(REFERENCE + ["/summary"])
        exit_code, output = run_agent(
            node_modules,
            {
                "forms:cache:A": matching,
                "forms:cache:B": matching,
                "forms:cache:C": form_bytes(["/start", REFERENCE[1]]),
            },
        )

        assert exit_code == 0
        total_keys, matches = parse_response(output)
        assert total_keys == 3
        assert [m.form_id for m in matches] == ["A", "B"]
        assert {m.sha256 for m in matches} == {hashlib.sha256(matching).hexdigest()}
        assert matches[0].size == len(matching)
        assert matches[0].page_count == 3

    def test_one_byte_difference_hashes_apart(self, node_modules):
        first = form_bytes(REFERENCE, note="café")
        second = first.replace("é".encode("utf-8"), "è".encode("utf-8"))
        exit_code, output = run_agent(
            node_modules, {"forms:cache:A": first, "forms:cache:B": second}
        )

        assert exit_code == 0
        _, matches = parse_response(output)
        assert [m.sha256 for m in matches] == [
            hashlib.sha256(first).hexdigest(),
            hashlib.sha256(second).hexdigest(),
        ]
        assert [m.size for m in matches] == [len(first), len(second)]

    def test_skips_malformed_entries(self, node_modules):
        exit_code, output = run_agent(
            node_modules,
            {
                "forms:cache:A": form_bytes(REFERENCE),
                "forms:cache:JSON": b"{not json",
                "forms:cache:UTF8": b'{"x": "\xff"}',
                "forms:cache:EMPTY": b"",
                "forms:cache:SHORT": form_bytes(REFERENCE[:1]),
                "forms:cache:SWAPPED": form_bytes(list(reversed(REFERENCE))),
            },
        )

        assert exit_code == 0
        total_keys, matches = parse_response(output)
        assert total_keys == 6
        assert [m.form_id for m in matches] == ["A"]

    def test_no_matches(self, node_modules):
        exit_code, output = run_agent(node_modules, {})
        assert exit_code == 0
        assert parse_response(output) == (0, [])

    def test_connection_error(self, node_modules):
        exit_code, output = run_agent(
            node_modules, error="connect ECONNREFUSED 10.0.0.1:6379"
        )

        assert exit_code == 1
        with pytest.raises(RemoteScriptFailure, match="ECONNREFUSED") as excinfo:
            parse_response(output)
        assert "ECONNREFUSED" in excinfo.value.details

    def test_missing_redis_uri(self, node_modules):
        exit_code, output = run_agent(node_modules, redis_uri=None)

        assert exit_code == 1
        with pytest.raises(RemoteScriptFailure, match="Could not find Redis URI"):
            parse_response(output)
