from roomkeeper.main import run

run()
