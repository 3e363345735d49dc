from picktwo.errors import FormValidationError


def validate_or_raise(form):
    """Validate a JSON API form; failures raise FormValidationError with the field errors"""
    if not form.validate():
        raise FormValidationError("Invalid request payload", fields=form.errors)
    return form
