"""
Headless entry point
 - Single responsibility: launch the slideshow engine
 - Imports and calls slideshow.app.main()
"""
import sys
from slideshow.app import main

if __name__ == "__main__":
    sys.exit(main())
