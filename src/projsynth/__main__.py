from projsynth.cli import app

app()
