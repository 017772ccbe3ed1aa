from cover_crop_tool.app import main

main()
