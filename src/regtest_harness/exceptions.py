# Copyright 2025 iGenius S.p.A
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Custom exceptions."""


class HarnessError(Exception):
    """Base class for all custom exceptions.

    Useful to catch all of them.
    """


class ConfigError(HarnessError):
    """The harness configuration could not be read or validated."""


class ProvisionError(HarnessError):
    """The dependency service could not be launched."""


class ReadinessTimeout(HarnessError):
    """The dependency was launched but never passed its health check."""

    def __init__(self, url: str, attempts: int):
        """Raise the ReadinessTimeout.

        Args:
            url (str): Health-check endpoint that never became ready.
            attempts (int): Number of probe attempts consumed.
        """
        self.url = url
        self.attempts = attempts
        super().__init__(f"{url} not ready after {attempts} attempt(s).")


class TestRunnerFailure(HarnessError):
    """The dependency was ready but the test suite reported a failure."""

    __test__ = False  # not a pytest test class

    def __init__(self, exit_code: int):
        """Raise the TestRunnerFailure.

        Args:
            exit_code (int): Exit status reported by the test runner.
        """
        self.exit_code = exit_code
        super().__init__(f"Test runner exited with status {exit_code}.")


class TeardownWarning(HarnessError):
    """Cleanup of the dependency failed. Logged, never escalated.

    Provisioners return ``str(TeardownWarning(...))`` from ``stop`` instead of
    raising it.
    """

    def __init__(self, project: str, reason: str):
        self.project = project
        self.reason = reason
        super().__init__(f"Teardown of {project} failed: {reason}")


class HarnessInterrupted(HarnessError):
    """A termination signal arrived while the harness was running."""

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}.")
