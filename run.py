from picktwo import create_app, db
from picktwo.models import Game, League, Pick, Score, Season, Team, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "League": League,
        "Game": Game,
        "Pick": Pick,
        "Score": Score,
        "Season": Season,
        "Team": Team,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
