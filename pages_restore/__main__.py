from pages_restore.cli import run

run()
