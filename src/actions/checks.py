"""Assertion actions run against a live stack.

These run inside StackLifecycle.run(), after apply has succeeded. They read
the OutputReader and AwsResourceClient from the scenario context:
- context['outputs']: OutputReader bound to the applied stack
- context['aws']: AwsResourceClient for the stack's region (optional)
"""

import logging
import re
import time
from dataclasses import dataclass

from actions.aws import (
    AssertionInconclusiveError,
    AwsResourceClient,
    ResourceAbsentError,
    ResourceKind,
    check_endpoint,
)
from common import ActionResult
from config import StackConfig
from outputs import OutputMissingError

logger = logging.getLogger(__name__)

CLOUDFRONT_DOMAIN_PATTERN = r'^[a-z0-9]+\.cloudfront\.net$'
AWS_URL_PATTERN = r'^https://[^/]+\.amazonaws\.com(/|$)'


def _read(config: StackConfig, context: dict, output: str) -> str:
    outputs = context.get('outputs')
    if outputs is None:
        raise OutputMissingError(config.name, output, 'apply has not succeeded')
    return outputs.read(output)


def _aws_client(config: StackConfig, context: dict) -> AwsResourceClient:
    if context.get('aws') is None:
        context['aws'] = AwsResourceClient(config.aws_region)
    return context['aws']


@dataclass
class ReadOutputAction:
    """Read a required output and publish it to the context."""
    name: str
    output: str

    def run(self, config: StackConfig, context: dict) -> ActionResult:
        start = time.time()
        try:
            value = _read(config, context, self.output)
        except OutputMissingError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        return ActionResult(
            success=True,
            message=f"{self.output} = {value}",
            duration=time.time() - start,
            context_updates={self.output: value}
        )


@dataclass
class AssertOutputPatternAction:
    """Fail unless an output matches a regular expression."""
    name: str
    output: str
    pattern: str
    description: str = ''

    def run(self, config: StackConfig, context: dict) -> ActionResult:
        start = time.time()
        try:
            value = _read(config, context, self.output)
        except OutputMissingError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        expected = self.description or f"match {self.pattern}"
        if not re.search(self.pattern, value):
            return ActionResult(
                success=False,
                message=f"{self.output} '{value}' does not {expected}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"{self.output} '{value}' {expected}",
            duration=time.time() - start,
            context_updates={self.output: value}
        )


@dataclass
class AssertResourceExistsAction:
    """Confirm, against the provider, that the resource named by an output exists."""
    name: str
    kind: ResourceKind
    output: str

    def run(self, config: StackConfig, context: dict) -> ActionResult:
        start = time.time()
        try:
            identifier = _read(config, context, self.output)
        except OutputMissingError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        client = _aws_client(config, context)
        logger.info(f"[{self.name}] Checking {self.kind.value} '{identifier}' in {client.region}...")
        try:
            client.require_exists(self.kind, identifier)
        except ResourceAbsentError as e:
            return ActionResult(
                success=False,
                message=f"Assertion failed: {e}",
                duration=time.time() - start
            )
        except AssertionInconclusiveError as e:
            return ActionResult(
                success=False,
                message=f"Assertion inconclusive: {e}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"{self.kind.value} '{identifier}' exists in {client.region}",
            duration=time.time() - start
        )


@dataclass
class AssertEndpointRespondsAction:
    """Confirm the HTTP endpoint named by an output answers without a server error."""
    name: str
    output: str
    method: str = 'OPTIONS'
    timeout: int = 10

    def run(self, config: StackConfig, context: dict) -> ActionResult:
        start = time.time()
        try:
            url = _read(config, context, self.output)
        except OutputMissingError as e:
            return ActionResult(success=False, message=str(e), duration=time.time() - start)

        try:
            status = check_endpoint(url, method=self.method, timeout=self.timeout)
        except AssertionInconclusiveError as e:
            return ActionResult(
                success=False,
                message=f"Assertion inconclusive: {e}",
                duration=time.time() - start
            )

        if status >= 500:
            return ActionResult(
                success=False,
                message=f"Assertion failed: {self.method} {url} returned {status}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"{self.method} {url} returned {status}",
            duration=time.time() - start
        )
