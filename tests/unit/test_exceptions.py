"""Unit tests for the exception taxonomy."""

import grpc
import pytest

from qumulo_csi import exceptions as qumulo_exceptions


class TestCodes:
    @pytest.mark.parametrize(
        "exception_class,code",
        [
            (qumulo_exceptions.InvalidArgument, grpc.StatusCode.INVALID_ARGUMENT),
            (qumulo_exceptions.InvalidVolumeId, grpc.StatusCode.INVALID_ARGUMENT),
            (qumulo_exceptions.CredentialsMissing, grpc.StatusCode.UNAUTHENTICATED),
            (qumulo_exceptions.LoginFailed, grpc.StatusCode.UNAUTHENTICATED),
            (qumulo_exceptions.FailedPrecondition, grpc.StatusCode.FAILED_PRECONDITION),
            (qumulo_exceptions.NotFound, grpc.StatusCode.NOT_FOUND),
            (qumulo_exceptions.AlreadyExists, grpc.StatusCode.ALREADY_EXISTS),
            (qumulo_exceptions.Internal, grpc.StatusCode.INTERNAL),
            (qumulo_exceptions.Unimplemented, grpc.StatusCode.UNIMPLEMENTED),
            (qumulo_exceptions.ApiTimeout, grpc.StatusCode.DEADLINE_EXCEEDED),
            (qumulo_exceptions.ApiConnectionError, grpc.StatusCode.UNAVAILABLE),
        ],
    )
    def test_code(self, exception_class, code):
        assert exception_class("boom").code == code

    def test_message(self):
        err = qumulo_exceptions.NotFound("no such thing")

        assert err.message == "no such thing"
        assert str(err) == "no such thing"


class TestRestError:
    def test_from_response(self):
        err = qumulo_exceptions.RestError.from_response(
            409,
            {
                "module": "qfsd",
                "error_class": "fs_entry_exists_error",
                "description": "exists",
                "stack": ["a"],
                "user_visible": True,
            },
        )

        assert err.matches(409)
        assert err.matches(409, "fs_entry_exists_error")
        assert not err.matches(404)
        assert not err.matches(409, "other_error")
        assert str(err) == "409 exists qfsd fs_entry_exists_error ['a']"

    def test_from_response_ignores_non_dict(self):
        err = qumulo_exceptions.RestError.from_response(500, ["not", "a", "dict"])

        assert err.status_code == 500
        assert err.error_class == ""
        assert err.stack == []
        assert err.user_visible is False


class TestTransformRestError:
    def test_error_class_before_status(self):
        err = qumulo_exceptions.RestError(409, error_class="fs_entry_exists_error")
        by_class = qumulo_exceptions.AlreadyExists("by class")
        by_status = qumulo_exceptions.Internal("by status")

        result = qumulo_exceptions.transform_rest_error(
            err, {409: by_status, (409, "fs_entry_exists_error"): by_class}
        )

        assert result is by_class

    def test_status_when_class_differs(self):
        err = qumulo_exceptions.RestError(409, error_class="other_error")
        by_status = qumulo_exceptions.AlreadyExists("by status")

        result = qumulo_exceptions.transform_rest_error(
            err, {(409, "fs_entry_exists_error"): qumulo_exceptions.Internal("x"), 409: by_status}
        )

        assert result is by_status

    def test_unmatched_becomes_internal(self):
        err = qumulo_exceptions.RestError(500, error_class="boom", description="it broke")

        result = qumulo_exceptions.transform_rest_error(err, {404: qumulo_exceptions.NotFound("x")})

        assert isinstance(result, qumulo_exceptions.Internal)
        assert result.message.startswith("Unhandled Error: 500 it broke")

    def test_other_exceptions_pass_through(self):
        err = qumulo_exceptions.ApiTimeout("slow")

        assert qumulo_exceptions.transform_rest_error(err, {404: qumulo_exceptions.NotFound("x")}) is err
