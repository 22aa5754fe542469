from healthmate_edge.main import run

run()
