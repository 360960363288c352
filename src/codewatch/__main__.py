from codewatch.app import main

main()
