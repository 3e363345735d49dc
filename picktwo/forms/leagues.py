from flask_wtf import FlaskForm
from wtforms import BooleanField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional, Regexp

from picktwo.forms.auth import FALSE_VALUES
from picktwo.models.league import (
    JOIN_CODE_LENGTH,
    VISIBILITY_PRIVATE,
    VISIBILITY_PUBLIC,
)


class CreateLeagueForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField(
        "League Name",
        validators=[
            DataRequired(),
            Length(
                min=3, max=50, message="League name must be between 3 and 50 characters"
            ),
            Regexp(
                r"^[a-zA-Z0-9 _.-]+$", message="League name contains invalid characters"
            ),
        ],
    )
    description = TextAreaField(
        "Description",
        validators=[
            Optional(),
            Length(max=500, message="Description cannot exceed 500 characters"),
        ],
    )
    visibility = SelectField(
        "Visibility",
        choices=[VISIBILITY_PUBLIC, VISIBILITY_PRIVATE],
        default=VISIBILITY_PUBLIC,
    )
    require_unique_point_values = BooleanField(
        "Require unique point values", default=False, false_values=FALSE_VALUES
    )


class JoinLeagueForm(FlaskForm):
    """Join a private league by code or a public league by id"""

    class Meta:
        csrf = False

    join_code = StringField(
        "Join Code",
        validators=[
            Optional(),
            Regexp(
                rf"^[A-Za-z0-9]{{{JOIN_CODE_LENGTH}}}$",
                message=f"Join code must be {JOIN_CODE_LENGTH} letters or digits",
            ),
        ],
    )
    league_id = IntegerField("League", validators=[Optional()])

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        # Either a join code or a league id is required
        if self.league_id.data is None and not self.join_code.data:
            self.league_id.errors.append("Provide a join code or a league id")
            return False
        return True


class LeagueSettingsForm(FlaskForm):
    class Meta:
        csrf = False

    visibility = SelectField(
        "Visibility", choices=[VISIBILITY_PUBLIC, VISIBILITY_PRIVATE]
    )


class TransferOwnershipForm(FlaskForm):
    class Meta:
        csrf = False

    user_id = IntegerField("New Owner", validators=[DataRequired()])
