from fastapi.responses import JSONResponse


def _envelope(status, ok, data, error, message):
    # Every non-webhook route answers with {ok, data, error, message}
    return JSONResponse(
        status_code=status,
        content={"ok": ok, "data": data, "error": error, "message": message},
    )


def success_response(data=None, message="OK", status=200):
    return _envelope(status, True, {} if data is None else data, None, message)


def error_response(error_code, status=400, message="An error occurred", data=None):
    return _envelope(status, False, data or {}, error_code, message)


def billing_error_response(error):
    """Render a services.errors.BillingError with its own code and HTTP status."""
    body = error.to_dict()
    return error_response(body["error"], status=error.status_code, message=body["message"], data=body["details"])
