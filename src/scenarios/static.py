"""Static definition checks.

Both scenarios are side-effect free on live infrastructure, have no run
gate, and can be repeated any number of times with the same outcome.
"""

from actions import TofuFormatCheckAction, TofuValidateAction
from config import StackConfig
from scenarios import register_scenario


@register_scenario
class FormatCheck:
    """Verify the definition root is canonically formatted."""

    name = 'fmt-check'
    description = 'Check formatting of the definition root (fmt -check)'
    expected_runtime = 5

    def get_phases(self, config: StackConfig) -> list[tuple]:
        return [
            ('fmt', TofuFormatCheckAction(name='fmt'), 'Check formatting'),
        ]


@register_scenario
class Validate:
    """Statically validate the definition root with no variables."""

    name = 'validate'
    description = 'Validate the definition root (init -backend=false, validate)'
    expected_runtime = 30

    def get_phases(self, config: StackConfig) -> list[tuple]:
        return [
            ('validate', TofuValidateAction(name='validate'), 'Validate configuration'),
        ]
