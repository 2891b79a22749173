from remarkable_tui.cli import app

app(prog_name="remarkable-tui")
