from nmt_ui.cli import main

main()
