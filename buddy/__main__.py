from buddy.main import run

run()
