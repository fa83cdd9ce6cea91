"""Tests for the deployment record store."""

import json
from pathlib import Path

import pytest

from deployer.errors import PreconditionError, RecordMalformed, RecordNotFound
from deployer.record import DeploymentRecord, RecordStore


def _write(tmp_path: Path, data: object) -> Path:
  path = tmp_path / "deployment-info.json"
  path.write_text(json.dumps(data))
  return path


class TestRecordStore:
  """Tests for RecordStore.load."""

  def test_loads_valid_record(self, record_file: Path) -> None:
    """All fields are read, including the optional ones."""
    record = RecordStore(record_file).load()

    assert record == DeploymentRecord(
      bucket_name="site-bucket",
      distribution_id="DIST123",
      domain_name="app.example.com",
      region="us-east-1",
      deployed_at="2025-01-01T00:00:00Z",
    )
    assert record.url == "https://app.example.com"

  def test_optional_fields_absent(self, tmp_path: Path) -> None:
    """region and deployedAt are not required."""
    path = _write(
      tmp_path,
      {"bucketName": "b", "distributionId": "D", "domainName": "example.com"},
    )

    record = RecordStore(path).load()

    assert record.region is None
    assert record.deployed_at is None

  def test_whitespace_is_stripped(self, tmp_path: Path) -> None:
    """Surrounding whitespace is not part of an identifier."""
    path = _write(
      tmp_path,
      {"bucketName": " b ", "distributionId": "D\n", "domainName": "example.com"},
    )

    record = RecordStore(path).load()

    assert record.bucket_name == "b"
    assert record.distribution_id == "D"

  def test_missing_file(self, tmp_path: Path) -> None:
    """An absent record raises RecordNotFound."""
    with pytest.raises(RecordNotFound) as exc:
      RecordStore(tmp_path / "deployment-info.json").load()

    assert isinstance(exc.value, PreconditionError)
    assert "deployment-info.json" in str(exc.value)

  def test_directory_is_not_a_record(self, tmp_path: Path) -> None:
    """A directory at the record path counts as missing."""
    (tmp_path / "deployment-info.json").mkdir()

    with pytest.raises(RecordNotFound):
      RecordStore(tmp_path / "deployment-info.json").load()

  @pytest.mark.parametrize("missing", ["bucketName", "distributionId", "domainName"])
  def test_missing_required_field(self, tmp_path: Path, missing: str) -> None:
    """Each required field must be present."""
    data = {"bucketName": "b", "distributionId": "D", "domainName": "example.com"}
    del data[missing]
    path = _write(tmp_path, data)

    with pytest.raises(RecordMalformed, match=missing):
      RecordStore(path).load()

  @pytest.mark.parametrize("value", ["", "   ", None, 42, "null"])
  def test_unusable_field_value(self, tmp_path: Path, value: object) -> None:
    """Empty, non-string, and jq-style null values are rejected."""
    path = _write(
      tmp_path,
      {"bucketName": value, "distributionId": "D", "domainName": "example.com"},
    )

    with pytest.raises(RecordMalformed, match="bucketName"):
      RecordStore(path).load()

  def test_invalid_json(self, tmp_path: Path) -> None:
    """A file that is not JSON is malformed."""
    path = tmp_path / "deployment-info.json"
    path.write_text("{not json")

    with pytest.raises(RecordMalformed, match="not valid JSON"):
      RecordStore(path).load()

  def test_top_level_array(self, tmp_path: Path) -> None:
    """The record must be a JSON object."""
    path = _write(tmp_path, ["site-bucket"])

    with pytest.raises(RecordMalformed, match="object"):
      RecordStore(path).load()
