"""Reusable stack actions."""

from actions.tofu import (
    TofuRunner,
    TofuFormatCheckAction,
    TofuValidateAction,
)
from actions.aws import (
    AwsResourceClient,
    ResourceKind,
    ResourceAbsentError,
    AssertionInconclusiveError,
)
from actions.checks import (
    ReadOutputAction,
    AssertOutputPatternAction,
    AssertResourceExistsAction,
    AssertEndpointRespondsAction,
    CLOUDFRONT_DOMAIN_PATTERN,
    AWS_URL_PATTERN,
)

__all__ = [
    'TofuRunner',
    'TofuFormatCheckAction',
    'TofuValidateAction',
    'AwsResourceClient',
    'ResourceKind',
    'ResourceAbsentError',
    'AssertionInconclusiveError',
    'ReadOutputAction',
    'AssertOutputPatternAction',
    'AssertResourceExistsAction',
    'AssertEndpointRespondsAction',
    'CLOUDFRONT_DOMAIN_PATTERN',
    'AWS_URL_PATTERN',
]
