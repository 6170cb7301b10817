import subprocess

from .exceptions import SessionManagerPluginMissing


class ConfigChecker:
    @staticmethod
    def check_session_manager_plugin():
        """Check if session-manager-plugin is installed and accessible."""
        try:
            subprocess.run(
                ["session-manager-plugin", "--version"],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
            return True
        except (subprocess.CalledProcessError, FileNotFoundError):
            return False

    def validate_all(self):
        """Perform all pre-flight checks, raising on the first that fails."""
        results = {
            "session_manager_plugin": self.check_session_manager_plugin(),
        }
        if not results["session_manager_plugin"]:
            raise SessionManagerPluginMissing()
        return results
