import json
import logging
import subprocess

from .exceptions import SessionManagerPluginMissing

logger = logging.getLogger(__name__)


class ExecSession:
    """ECS Exec session context manager, driving the session-manager-plugin."""

    def __init__(
        self,
        ecs_client,
        target: str,
        ssm_client=None,
        label: str = None,
        **kwargs,
    ):
        self.ecs = ecs_client
        self.ssm = ssm_client
        self.target = target
        self.label = label
        self.kwargs = kwargs
        self.session = None
        self.proc = None
        self.output = ""

    def _log(self, message, level=logging.INFO):
        prefix = f"[{self.label}] " if self.label else ""
        logger.log(level, f"{prefix}{message}")

    def __enter__(self):
        self._log(f"Starting ECS Exec session for task: {self.kwargs.get('task')}")
        response = self.ecs.execute_command(interactive=True, **self.kwargs)
        self.session = response["session"]
        try:
            self._log("Launching session-manager-plugin...")
            self.proc = subprocess.Popen(
                (
                    "session-manager-plugin",
                    json.dumps(self.session),
                    self.ecs.meta.region_name,
                    "StartSession",
                    "",
                    json.dumps({"Target": self.target}),
                    self.ecs.meta.endpoint_url,
                ),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            self.__exit__(None, None, None)
            raise SessionManagerPluginMissing()
        return self

    def run(self):
        """Stream the session output until the remote command ends. Returns the exit code."""
        lines = []
        for raw in self.proc.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self._log(line, level=logging.DEBUG)
            lines.append(line)
        self.output = "\n".join(lines)
        return self.proc.wait()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.proc and self.proc.poll() is None:
            self._log("Terminating session-manager-plugin...")
            self.proc.terminate()
            try:
                self.proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._log("Force killing session-manager-plugin...")
                self.proc.kill()

        if self.session and self.ssm:
            self.ssm.terminate_session(SessionId=self.session["sessionId"])
        self.session = None
