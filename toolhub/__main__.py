from toolhub.main import main

main()
