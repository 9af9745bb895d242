"""Tests for scenario reports."""

import json

from reporting import FAILED, PASSED, SKIPPED, TestReport


def _report(tmp_path, **kwargs):
    return TestReport(stack='pipelines', report_dir=tmp_path, scenario='pipelines-roundtrip',
                      run_id='r1', **kwargs)


class TestTestReport:
    """Test TestReport phase recording and output files."""

    def test_passed_report_files(self, tmp_path):
        report = _report(tmp_path)
        report.start()
        report.start_phase('apply', 'terraform apply')
        report.pass_phase('apply', 'done', 1.5)
        report.finish(True)

        assert report.status == PASSED
        assert report.success is True
        json_files = list(tmp_path.glob('*.pipelines.pipelines-roundtrip.r1.passed.json'))
        md_files = list(tmp_path.glob('*.passed.md'))
        assert len(json_files) == 1
        assert len(md_files) == 1
        data = json.loads(json_files[0].read_text())
        assert data['phases'][0] == {
            'name': 'apply',
            'description': 'terraform apply',
            'status': 'passed',
            'message': 'done',
            'duration': 1.5,
        }

    def test_failed_phase_error_in_dict(self, tmp_path):
        report = _report(tmp_path)
        report.start()
        report.start_phase('dynamodb-table', 'Verify table')
        report.fail_phase('dynamodb-table', 'Assertion failed: table absent')
        report.finish(False)

        assert report.status == FAILED
        assert [p.name for p in report.failed_phases()] == ['dynamodb-table']
        data = report.to_dict()
        assert data['error'] == 'Assertion failed: table absent'

    def test_skip_records_reason(self, tmp_path):
        report = _report(tmp_path)
        report.skip('Integration test skipped - set RUN_INTEGRATION_TESTS=true to enable')

        assert report.status == SKIPPED
        assert report.success is False
        data = report.to_dict()
        assert data['skip_reason'].startswith('Integration test skipped')
        md = next(tmp_path.glob('*.skipped.md')).read_text()
        assert '**Skipped**' in md

    def test_markdown_escapes_pipes(self, tmp_path):
        report = _report(tmp_path)
        report.start()
        report.fail_phase('fmt', 'a|b\nc')
        report.finish(False)
        md = next(tmp_path.glob('*.failed.md')).read_text()
        assert 'a\\|b c' in md

    def test_context_filtered_to_json_values(self, tmp_path):
        report = _report(tmp_path)
        report.finish(True)
        data = report.to_dict({'s3_bucket_name': 'b1', 'outputs': object(), '_private': 1})
        assert data['context'] == {'s3_bucket_name': 'b1'}
