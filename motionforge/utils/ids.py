"""Identifier utilities."""

from __future__ import annotations

import re
import uuid

_JOB_ID_RE = re.compile(r"^[a-f0-9-]+$", re.IGNORECASE)


def generate_job_id() -> str:
  """Return a new, externally unguessable job identifier."""
  return str(uuid.uuid4())


def generate_bucket_key() -> str:
  """Return a bucket key unique to one pipeline run."""
  # Bucket keys only allow [-_.a-z0-9], so drop the uuid dashes.
  return f"bucket_{uuid.uuid4().hex}"


def is_valid_job_id(job_id: str | None) -> bool:
  """Return True when a job id has the shape produced by generate_job_id."""
  if not job_id:
    return False
  return bool(_JOB_ID_RE.match(job_id))
