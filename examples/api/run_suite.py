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

import sys

from regtest_harness import HarnessConfig, Orchestrator

# Same as `regtest-harness run -c examples/regtest/harness.yaml`, from Python.
cfg = HarnessConfig.read("examples/regtest/harness.yaml")
cfg.commands = [[sys.executable, "-m", "pytest", "tests/integration", "-x"]]

report = Orchestrator.from_config(cfg).run()
print(f"{report.outcome.value}: exit {report.exit_code} after {report.attempts} probe(s)")
sys.exit(report.exit_code)
