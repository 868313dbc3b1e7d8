from relpipe.cli.app import main

main()
