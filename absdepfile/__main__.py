from absdepfile.cli import main

main()
