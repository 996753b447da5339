from gitarchive.main import main

main()
