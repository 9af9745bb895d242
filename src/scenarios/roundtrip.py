"""Apply/assert/destroy scenarios.

Each scenario provisions its stack through StackLifecycle, so destroy runs
after the phases below whatever their outcome. Resource existence is always
checked against the provider, not inferred from output names.
"""

from actions import (
    AssertEndpointRespondsAction,
    AssertOutputPatternAction,
    AssertResourceExistsAction,
    ReadOutputAction,
    ResourceKind,
    AWS_URL_PATTERN,
    CLOUDFRONT_DOMAIN_PATTERN,
)
from config import StackConfig
from scenarios import register_scenario


@register_scenario
class PipelinesRoundtrip:
    """Static site pipeline: S3 origin, CloudFront, API Gateway, DynamoDB.

    Phases (after init/apply):
    1. s3-bucket: bucket named by s3_bucket_name exists
    2. cloudfront-distribution: distribution id output exists live
    3. cloudfront-domain: domain is a *.cloudfront.net name
    4. api-gateway-url: URL is an amazonaws.com endpoint
    5. api-gateway-endpoint: endpoint answers HTTP (no 5xx)
    6. dynamodb-table: table named by dynamodb_table_name exists
    """

    name = 'pipelines-roundtrip'
    description = 'Apply the pipeline stack, assert live resources, destroy'
    provisions = True
    expected_runtime = 900

    def get_phases(self, config: StackConfig) -> list[tuple]:
        return [
            ('s3-bucket', AssertResourceExistsAction(
                name='s3-bucket',
                kind=ResourceKind.S3_BUCKET,
                output='s3_bucket_name',
            ), 'Verify S3 bucket exists'),
            ('cloudfront-distribution', AssertResourceExistsAction(
                name='cloudfront-distribution',
                kind=ResourceKind.CLOUDFRONT_DISTRIBUTION,
                output='cloudfront_distribution_id',
            ), 'Verify CloudFront distribution exists'),
            ('cloudfront-domain', AssertOutputPatternAction(
                name='cloudfront-domain',
                output='cloudfront_domain_name',
                pattern=CLOUDFRONT_DOMAIN_PATTERN,
                description='end with cloudfront.net',
            ), 'Verify CloudFront domain name'),
            ('api-gateway-url', AssertOutputPatternAction(
                name='api-gateway-url',
                output='api_gateway_url',
                pattern=AWS_URL_PATTERN,
                description='point at amazonaws.com',
            ), 'Verify API Gateway URL'),
            ('api-gateway-endpoint', AssertEndpointRespondsAction(
                name='api-gateway-endpoint',
                output='api_gateway_url',
            ), 'Verify API Gateway answers'),
            ('dynamodb-table', AssertResourceExistsAction(
                name='dynamodb-table',
                kind=ResourceKind.DYNAMODB_TABLE,
                output='dynamodb_table_name',
            ), 'Verify DynamoDB table exists'),
        ]


@register_scenario
class ContactTableRoundtrip:
    """Contact-form Lambda module: submissions table is created and live."""

    name = 'contact-table-roundtrip'
    description = 'Apply the contact-form Lambda stack, assert its table, destroy'
    provisions = True
    expected_runtime = 300

    def get_phases(self, config: StackConfig) -> list[tuple]:
        return [
            ('table-output', ReadOutputAction(
                name='table-output',
                output='contact_submissions_table_name',
            ), 'Read submissions table name'),
            ('dynamodb-table', AssertResourceExistsAction(
                name='dynamodb-table',
                kind=ResourceKind.DYNAMODB_TABLE,
                output='contact_submissions_table_name',
            ), 'Verify submissions table exists'),
        ]
