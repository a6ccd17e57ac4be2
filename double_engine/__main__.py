from double_engine.cli import main

main()
