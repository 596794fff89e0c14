#!/usr/bin/env python3
"""
publish_calendar.py
Put the rendered calendar somewhere subscribers can fetch it.

Every sink offers the same put-object call:
    put_object(bucket, key, body, content_type, public_read) -> StageResult[str]

Sinks:
  github  bucket = "username/reponame", key = path inside the repository.
          Uses the GitHub REST API v3 contents endpoint (create-or-update).
          The file is as visible as the repository itself.
  s3      bucket = S3 / DigitalOcean Spaces bucket, key = object key.
          ContentType and ACL (public-read or private) are set on the object.
  folder  bucket = sub-directory of PUBLISH_FOLDER, key = file name.

Config (.env beside master_script.py):
  PUBLISH_SINK=github            # or "s3", "folder"
  GITHUB_TOKEN=<PAT with repo scope>
  GITHUB_BRANCH=main
  GITHUB_COMMIT_MSG=Automated update of merged calendar
  PUBLISH_FOLDER=calendars
  S3_ENDPOINT_URL=https://fra1.digitaloceanspaces.com
  S3_REGION=fra1
  S3_ACCESS_KEY_ID=...
  S3_SECRET_ACCESS_KEY=...
"""
from __future__ import annotations

import os
from base64 import b64encode
from pathlib import Path
from typing import Optional, Protocol

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from calendar_errors import ConfigError, PublishError, StageResult

API_ROOT = "https://api.github.com"
USER_AGENT = "Cal-Merger-Bot/2.0"


class PublishSink(Protocol):
    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        public_read: bool,
    ) -> StageResult[str]:
        ...


class GitHubContentsSink:
    def __init__(self, token: str, branch: str = "main",
                 commit_msg: str = "Automated update of merged calendar",
                 session: Optional[requests.Session] = None):
        self.token = token
        self.branch = branch
        self.commit_msg = commit_msg
        self.session = session or requests.Session()

    def github_request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        headers.update({
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        })
        return self.session.request(method, url, headers=headers, timeout=30, **kwargs)

    def put_object(self, bucket: str, key: str, body: bytes,
                   content_type: str, public_read: bool) -> StageResult[str]:
        remote_path = key.lstrip("/")
        url = f"{API_ROOT}/repos/{bucket}/contents/{remote_path}"
        try:
            # 1. Fetch the current SHA, needed when the file already exists
            resp = self.github_request("GET", url, params={"ref": self.branch})
            sha = resp.json().get("sha") if resp.ok else None

            # 2. PUT (create/update) the file
            payload = {
                "message": self.commit_msg,
                "branch": self.branch,
                "content": b64encode(body).decode(),
            }
            if sha:
                payload["sha"] = sha
            r = self.github_request("PUT", url, json=payload)
        except (requests.RequestException, ValueError) as e:
            return StageResult.failure(PublishError(f"GitHub request failed: {e}", url=url))

        if r.status_code not in (200, 201):
            return StageResult.failure(PublishError(f"GitHub API error {r.status_code}: {r.text}", url=url))
        action = "Updated" if sha else "Created"
        print(f"✅ {action} {remote_path} in {bucket}@{self.branch}")
        return StageResult.success(remote_path)


class S3Sink:
    def __init__(self, client):
        self.client = client

    @classmethod
    def from_credentials(cls, endpoint_url: Optional[str], region: Optional[str],
                         access_key: str, secret_key: str) -> "S3Sink":
        client = boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            region_name=region or None,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
        return cls(client)

    def put_object(self, bucket: str, key: str, body: bytes,
                   content_type: str, public_read: bool) -> StageResult[str]:
        if not bucket:
            return StageResult.failure(PublishError("No bucket configured for the s3 sink"))
        try:
            self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                ACL="public-read" if public_read else "private",
            )
        except (ClientError, BotoCoreError) as e:
            return StageResult.failure(PublishError(f"Object upload failed: {e}", url=f"s3://{bucket}/{key}"))
        print(f"✅ Uploaded {key} to bucket {bucket}")
        return StageResult.success(key)


class LocalFolderSink:
    def __init__(self, root: Path):
        self.root = Path(root)

    def put_object(self, bucket: str, key: str, body: bytes,
                   content_type: str, public_read: bool) -> StageResult[str]:
        target = self.root / bucket / key.lstrip("/") if bucket else self.root / key.lstrip("/")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as fh:
                fh.write(body)
            target.chmod(0o644 if public_read else 0o600)
        except OSError as e:
            return StageResult.failure(PublishError(f"Cannot write {target}: {e}"))
        print(f"✅ Calendar written to: {target}")
        return StageResult.success(str(target))


def sink_from_env(kind: Optional[str] = None, folder: Optional[str] = None) -> PublishSink:
    kind = (kind or os.getenv("PUBLISH_SINK", "github")).strip().lower()
    if kind == "github":
        token = os.getenv("GITHUB_TOKEN", "")
        if not token:
            raise ConfigError("GITHUB_TOKEN is required for the github sink")
        return GitHubContentsSink(
            token=token,
            branch=os.getenv("GITHUB_BRANCH", "main"),
            commit_msg=os.getenv("GITHUB_COMMIT_MSG", "Automated update of merged calendar"),
        )
    if kind == "s3":
        access_key = os.getenv("S3_ACCESS_KEY_ID", "")
        secret_key = os.getenv("S3_SECRET_ACCESS_KEY", "")
        if not (access_key and secret_key):
            raise ConfigError("S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY are required for the s3 sink")
        return S3Sink.from_credentials(
            endpoint_url=os.getenv("S3_ENDPOINT_URL"),
            region=os.getenv("S3_REGION"),
            access_key=access_key,
            secret_key=secret_key,
        )
    if kind == "folder":
        return LocalFolderSink(Path(folder or os.getenv("PUBLISH_FOLDER", "calendars")))
    raise ConfigError(f"Unknown PUBLISH_SINK {kind!r} (expected 'github', 's3' or 'folder')")
