from devicerun import main

main()
