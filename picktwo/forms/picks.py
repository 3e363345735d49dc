from flask_wtf import FlaskForm
from wtforms import SelectField, SelectMultipleField
from wtforms.validators import DataRequired

from picktwo.utils.pick_rules import ByeSelection, TeamSelection, parse_selection


class WeekPicksForm(FlaskForm):
    """``{"mode": "bye"}`` or ``{"mode": "teams", "team_ids": [...]}``"""

    class Meta:
        csrf = False

    mode = SelectField(
        "Mode",
        choices=[ByeSelection.mode, TeamSelection.mode],
        validators=[DataRequired()],
    )
    team_ids = SelectMultipleField("Teams", coerce=int, validate_choice=False)

    def to_selection(self):
        return parse_selection(self.mode.data, self.team_ids.data)
