import pytest

from app.core.errors import InvalidArgument
from app.services.notifier import ConsoleNotifier, SESNotifier, compose
from app.services.storage import LocalArtifactStore, S3ArtifactStore, artifact_keys


class FakeS3:
    def __init__(self):
        self.objects = {}
        self.presigned = []

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = (Body, ContentType)

    def generate_presigned_url(self, op, Params, ExpiresIn):
        self.presigned.append((op, Params, ExpiresIn))
        return f"https://s3.example/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


class FakeSES:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def send_email(self, **kwargs):
        if self.fail:
            raise RuntimeError("throttled")
        self.calls.append(kwargs)
        return {"MessageId": "ses-1"}


def test_artifact_keys_are_deterministic():
    assert artifact_keys("abc") == {"document": "abc.pdf", "bundle": "abc.zip"}


def test_local_put_overwrites(tmp_path):
    store = LocalArtifactStore(tmp_path, base_url="/storage/")

    assert store.put(b"one", "o1.pdf") == "/storage/o1.pdf"
    store.put(b"two", "o1.pdf")

    assert (tmp_path / "o1.pdf").read_bytes() == b"two"
    assert [p.name for p in tmp_path.iterdir()] == ["o1.pdf"]


def test_private_local_store_has_no_public_url(tmp_path):
    store = LocalArtifactStore(tmp_path)

    url = store.put(b"proof", "o1.png")

    assert url.startswith("file://")


@pytest.mark.parametrize("key", ["", "../escape.pdf", "/etc/passwd", "a/../../b", "a\\b"])
def test_keys_cannot_escape_root(tmp_path, key):
    store = LocalArtifactStore(tmp_path, base_url="/storage")
    with pytest.raises(InvalidArgument):
        store.put(b"x", key)


def test_s3_store_presigns_with_ttl():
    client = FakeS3()
    store = S3ArtifactStore(client, "bucket", "artifacts", url_ttl_seconds=604800)

    url = store.put(b"%PDF", "o1.pdf", "application/pdf")

    assert client.objects[("bucket", "artifacts/o1.pdf")] == (b"%PDF", "application/pdf")
    assert url == "https://s3.example/bucket/artifacts/o1.pdf?X-Amz-Expires=604800"
    assert client.presigned[-1] == (
        "get_object",
        {"Bucket": "bucket", "Key": "artifacts/o1.pdf"},
        604800,
    )


def test_s3_url_for_issues_fresh_url():
    client = FakeS3()
    store = S3ArtifactStore(client, "bucket")

    store.url_for("o1.zip")
    store.url_for("o1.zip")

    assert len(client.presigned) == 2
    assert client.presigned[0][1]["Key"] == "o1.zip"


def test_compose_escapes_html():
    subject, text, html = compose("https://x.example/a?b=1&c=2", "<script>")

    assert subject == "Your report for <script> is ready"
    assert "https://x.example/a?b=1&c=2" in text
    assert "&lt;script&gt;" in html
    assert "b=1&amp;c=2" in html


def test_console_notifier():
    assert ConsoleNotifier().send("a@example.com", "https://x", "acme").success


def test_ses_notifier_success_and_failure():
    client = FakeSES()
    ok = SESNotifier(client, "Reports <no-reply@example.com>").send("a@example.com", "https://x", "acme")

    assert ok.success and ok.message_id == "ses-1"
    assert client.calls[0]["Destination"] == {"ToAddresses": ["a@example.com"]}

    failed = SESNotifier(FakeSES(fail=True), "x@example.com").send("a@example.com", "https://x", "acme")
    assert not failed.success
    assert failed.error == "throttled"
