from stepshot.cli import main

raise SystemExit(main())
