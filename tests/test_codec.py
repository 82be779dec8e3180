import json
from datetime import datetime, timezone

import pytest

from notify_shared import codec
from notify_shared.errors import DecodeError
from notify_shared.models import (
    DirectEnvelope,
    LifecycleStatus,
    RecordEnvelope,
    StatusEnvelope,
)

T = datetime(2025, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


class TestEncode:
    def test_direct_envelope_uses_wire_field_names(self):
        envelope = DirectEnvelope(mensagem_id="abc", conteudo_mensagem="hello", timestamp=T)

        data = json.loads(codec.encode(envelope))

        assert set(data) == {"mensagemId", "conteudoMensagem", "timestamp"}
        assert data["mensagemId"] == "abc"
        assert data["conteudoMensagem"] == "hello"
        assert datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00")) == T

    def test_record_envelope_shape(self):
        envelope = RecordEnvelope(
            id="notification-123",
            recipient="user@example.com",
            subject="Test Subject",
            message="Test notification message",
            priority="high",
        )

        assert json.loads(codec.encode(envelope)) == {
            "id": "notification-123",
            "recipient": "user@example.com",
            "subject": "Test Subject",
            "message": "Test notification message",
            "priority": "high",
        }

    def test_status_envelope_carries_canonical_status(self):
        envelope = StatusEnvelope(mensagem_id="m1", status=LifecycleStatus.COMPLETED, timestamp=T)

        data = json.loads(codec.encode(envelope))

        assert data["mensagemId"] == "m1"
        assert data["status"] == "completed"

    def test_non_ascii_content_survives(self):
        content = "Mensagem com acentos: ção, ã, ê, ü"
        envelope = DirectEnvelope(mensagem_id="x", conteudo_mensagem=content)

        decoded = codec.decode_entrada(codec.encode(envelope))

        assert decoded.conteudo_mensagem == content


class TestDecodeEntrada:
    def test_round_trip_direct_envelope(self):
        original = DirectEnvelope(mensagem_id="abc", conteudo_mensagem="hello", timestamp=T)

        decoded = codec.decode_entrada(codec.encode(original))

        assert isinstance(decoded, DirectEnvelope)
        assert decoded == original

    def test_dispatches_on_id_to_record_envelope(self):
        body = json.dumps({
            "id": "n1", "recipient": "a@b.c", "subject": "s", "message": "m", "priority": "low",
        }).encode()

        decoded = codec.decode_entrada(body)

        assert isinstance(decoded, RecordEnvelope)
        assert decoded.tracking_id == "n1"

    def test_timestamp_defaults_when_absent(self):
        decoded = codec.decode_entrada(b'{"mensagemId": "m1", "conteudoMensagem": "hi"}')

        assert decoded.tracking_id == "m1"
        assert decoded.timestamp.tzinfo is not None

    @pytest.mark.parametrize("body", [
        b"not json",
        b"\xff\xfe\x00",
        b"[1, 2, 3]",
        b'"just a string"',
        b'{"conteudoMensagem": "no id"}',
        b'{"mensagemId": "", "conteudoMensagem": "empty id"}',
        b'{"mensagemId": "m1"}',
        b'{"id": "n1", "recipient": "a@b.c", "subject": "s", "message": "m", "priority": "whenever"}',
    ])
    def test_malformed_bodies_raise_decode_error(self, body):
        with pytest.raises(DecodeError):
            codec.decode_entrada(body)

    def test_decode_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            codec.decode_entrada(b"{")


class TestDecodeStatus:
    def test_accepts_portuguese_labels(self):
        body = b'{"mensagemId": "m1", "status": "PROCESSADO_SUCESSO", "timestamp": "2025-03-01T12:30:00Z"}'

        decoded = codec.decode_status(body)

        assert decoded.status is LifecycleStatus.COMPLETED
        assert decoded.timestamp == T

    def test_rejects_unknown_label(self):
        with pytest.raises(DecodeError):
            codec.decode_status(b'{"mensagemId": "m1", "status": "LOST"}')


class TestLifecycleStatusLabels:
    @pytest.mark.parametrize("label,expected", [
        ("ENVIADO", LifecycleStatus.PENDING),
        ("PROCESSANDO", LifecycleStatus.PROCESSING),
        ("PROCESSADO_SUCESSO", LifecycleStatus.COMPLETED),
        ("FALHA_PROCESSAMENTO", LifecycleStatus.FAILED),
        ("failed", LifecycleStatus.FAILED),
        ("PROCESSING", LifecycleStatus.PROCESSING),
    ])
    def test_from_label(self, label, expected):
        assert LifecycleStatus.from_label(label) is expected

    def test_only_completed_and_failed_are_terminal(self):
        terminal = {s for s in LifecycleStatus if s.is_terminal}
        assert terminal == {LifecycleStatus.COMPLETED, LifecycleStatus.FAILED}
